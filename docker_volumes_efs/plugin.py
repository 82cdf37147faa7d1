"""Docker volume plugin protocol (HTTP+JSON over a unix socket) on top of EfsDriver."""

import os
import json
import asyncio
import inspect
from concurrent import futures
from functools import wraps
from pprint import pformat

from aiohttp import web

from easypy.misc import kwargs_resilient
from easypy.collections import separate
from easypy.exceptions import TException

from . import __version__
from .logging import logger
from .driver import EfsDriver
from .mounter import LocalMounter
from .consumers import ConsumerTracker
from .efs_session import EfsSession
from .sweeper import ReconciliationSweep
from .metadata import resolve_placement


PLUGIN_CONTENT_TYPE = "application/vnd.docker.plugins.v1.2+json"
IMPLEMENTS = ["VolumeDriver"]


class Instrumented:

    SILENCED = ["Capabilities", "Get", "List", "Path"]

    @classmethod
    def logged(cls, func):

        method = func.__name__
        log = logger.debug if (method in cls.SILENCED) else logger.info

        parameters = inspect.signature(func).parameters
        required_params, _ = map(
            set, separate(parameters, key=lambda k: parameters[k].default is inspect.Parameter.empty)
        )
        required_params.discard("self")

        func = kwargs_resilient(func)

        @wraps(func)
        def wrapper(self, request=None):
            params = dict(request or {})
            missing_params = required_params - set(params)

            log(f">>> {method}:")
            if params:
                for line in pformat(params).splitlines():
                    log(f"({method})    {line}")

            try:
                if missing_params:
                    msg = f'Missing required fields: {", ".join(sorted(missing_params))}'
                    logger.error(f"<<< {method}: {msg}")
                    return dict(Err=msg)

                ret = func(self, **params)
            except TException as exc:
                # Any exception inherited from TException
                logger.exception(f"Exception during {method}")
                return dict(Err=f"[{method}] {exc.render(color=False)}")
            except Exception as exc:
                logger.exception(f"Exception during {method}")
                return dict(Err=f"[{method}]: {exc}")

            ret = dict(ret or {})
            ret.setdefault("Err", "")
            log(f"<<< {method}:")
            for line in pformat(ret).splitlines():
                log(f"    {line}")
            return ret

        return wrapper

    @classmethod
    def __init_subclass__(cls):
        for name, func in list(vars(cls).items()):
            if name.startswith("_") or not inspect.isfunction(func):
                continue
            setattr(cls, name, cls.logged(func))
        super().__init_subclass__()


class PluginApi(Instrumented):
    """`VolumeDriver.*` endpoints. Parameter names follow the protocol's JSON fields."""

    def __init__(self, driver: EfsDriver):
        self.driver = driver

    def Create(self, Name, Opts=None):
        if Opts:
            logger.warning(f"Ignoring volume options for {Name}: {Opts}")
        self.driver.create(Name)

    def Remove(self, Name):
        self.driver.remove(Name)

    def Path(self, Name):
        return dict(Mountpoint=str(self.driver.path(Name)))

    def Mount(self, Name, ID=None):
        return dict(Mountpoint=str(self.driver.mount(Name)))

    def Unmount(self, Name, ID=None):
        self.driver.unmount(Name)

    def Get(self, Name):
        volume = self.driver.get(Name)
        return dict(Volume=dict(Name=volume.name, Mountpoint=str(volume.mountpoint), Status=dict(volume.status)))

    def List(self):
        return dict(Volumes=[dict(Name=v.name, Mountpoint=str(v.mountpoint)) for v in self.driver.list()])

    def Capabilities(self):
        return dict(Capabilities=dict(Scope=self.driver.SCOPE))


ENDPOINTS = [name for name, _ in inspect.getmembers(PluginApi, inspect.isfunction) if not name.startswith("_")]


def make_app(api: PluginApi, executor: futures.Executor) -> web.Application:
    """Route every `VolumeDriver.*` call to a worker thread; provisioning may block for minutes."""

    def reply(data):
        return web.json_response(data, content_type=PLUGIN_CONTENT_TYPE)

    async def activate(request):
        return reply(dict(Implements=IMPLEMENTS))

    def endpoint(method):
        async def handler(request):
            body = await request.read()
            try:
                payload = json.loads(body) if body.strip() else {}
            except ValueError:
                raise web.HTTPBadRequest(text="request body is not valid JSON")
            loop = asyncio.get_running_loop()
            return reply(await loop.run_in_executor(executor, method, payload))

        return handler

    app = web.Application()
    app.router.add_post("/Plugin.Activate", activate)
    for name in ENDPOINTS:
        app.router.add_post(f"/VolumeDriver.{name}", endpoint(getattr(api, name)))
    return app


################################################################
#
# Entrypoint
#
################################################################


def build_driver(config):
    """Wire all components together. Placement and inventory failures propagate (fatal at startup)."""
    placement = resolve_placement(config)
    tracker = ConsumerTracker(config)
    tracker.ping()
    mounter = LocalMounter(config)
    efs_session = EfsSession(config, region=placement.region)
    return EfsDriver(config, placement, efs_session, mounter, tracker)


def serve(config):
    logger.info(f"{config.plugin_name}: {__version__}")
    driver = build_driver(config)
    config.root.mkdir()

    sweep = ReconciliationSweep(config, driver.mounter, driver.tracker)
    sweep.start()

    executor = futures.ThreadPoolExecutor(max_workers=config.worker_threads)
    app = make_app(PluginApi(driver), executor)

    socket_path = config.socket_path
    config.socket_dir.mkdir()
    if socket_path.exists():
        os.remove(socket_path)  # stale socket from a previous run

    logger.info(f"Listening on {socket_path}, spawned threads {config.worker_threads}")
    try:
        web.run_app(app, path=str(socket_path), print=None)
    finally:
        sweep.stop()
        executor.shutdown(wait=False)
