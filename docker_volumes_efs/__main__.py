import sys
import argparse
from easypy.bunch import Bunch


CLI_OVERRIDES = dict(
    root="DOCKER_VOLUMES_EFS_ROOT",
    security="DOCKER_VOLUMES_EFS_SECURITY",
    subnet="DOCKER_VOLUMES_EFS_SUBNET",
    region="DOCKER_VOLUMES_EFS_REGION",
    docker="DOCKER_VOLUMES_EFS_DOCKER",
    verbose="DOCKER_VOLUMES_EFS_VERBOSE",
)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Docker volume plugin backed by AWS EFS")
    parser.set_defaults(func=lambda *_, **__: parser.print_help())

    subparsers = parser.add_subparsers()

    serve_parse = subparsers.add_parser("serve", help='Start the volume plugin (not for humans)')
    serve_parse.add_argument("--root", help="EFS volumes root directory")
    serve_parse.add_argument("--security", help="Security group to be assigned to new EFS mount targets")
    serve_parse.add_argument("--subnet", help="Subnet for new EFS mount targets (discovered when omitted)")
    serve_parse.add_argument("--region", help="AWS region (discovered when omitted)")
    serve_parse.add_argument("--docker", help="The Docker endpoint")
    serve_parse.add_argument("--verbose", action="store_true", default=None, help="Show verbose logging")
    serve_parse.set_defaults(func=_serve)

    sweep_parse = subparsers.add_parser("sweep", help='Unmount shares no running container uses, once')
    sweep_parse.add_argument("--root", help="EFS volumes root directory")
    sweep_parse.add_argument("--docker", help="The Docker endpoint")
    sweep_parse.set_defaults(func=_sweep)

    info_parse = subparsers.add_parser("info", help='Print versioning information and effective configuration')
    info_parse.add_argument("--output", default="json", choices=['json', 'yaml'], help="Output format")
    info_parse.set_defaults(func=_info)

    test_parse = subparsers.add_parser("test", help='Start unit tests')
    test_parse.set_defaults(func=_test)

    args = parser.parse_args(argv, namespace=Bunch())
    return args.pop("func")(args)


def _config(args):
    from .configuration import Config
    overrides = {env: args.get(opt) for opt, env in CLI_OVERRIDES.items()}
    if overrides["DOCKER_VOLUMES_EFS_VERBOSE"] is not None:
        overrides["DOCKER_VOLUMES_EFS_VERBOSE"] = "yes"
    return Config.snapshot(**overrides)


def _info(args):
    from . import __version__
    conf = _config(args)
    info = dict(name=conf.plugin_name, version=__version__, configuration=conf.as_dict())
    if args.output == "yaml":
        import yaml
        yaml.safe_dump(info, sys.stdout, default_flow_style=False)
    elif args.output == "json":
        import json
        json.dump(info, sys.stdout, indent=2)
    else:
        assert False, f"invalid output format: {args.output}"


def _test(args):
    """Runs the tests without code coverage"""
    import pytest
    sys.exit(pytest.main(["-x", "tests", "-s", "-v"]))


def _sweep(args):
    from .logging import init_logging, logger
    from .mounter import LocalMounter
    from .consumers import ConsumerTracker
    from .sweeper import ReconciliationSweep
    from .exceptions import InventoryFailed

    conf = _config(args)
    init_logging(level=conf.log_level)
    tracker = ConsumerTracker(conf)
    try:
        tracker.ping()
    except InventoryFailed as exc:
        logger.error(exc.render(color=False))
        sys.exit(1)
    for path in ReconciliationSweep(conf, LocalMounter(conf), tracker).sweep():
        print(path)


def _serve(args):
    from .logging import init_logging, logger
    from .exceptions import PlacementLookupFailed, InventoryFailed
    from .plugin import serve

    conf = _config(args)
    init_logging(level=conf.log_level)
    try:
        return serve(conf)
    except (PlacementLookupFailed, InventoryFailed) as exc:
        logger.error(f"Cannot start: {exc.render(color=False)}")
        sys.exit(1)


if __name__ == '__main__':
    main()
