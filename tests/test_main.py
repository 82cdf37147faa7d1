import json
from unittest.mock import patch

import pytest
import yaml

from docker_volumes_efs import __version__
from docker_volumes_efs.__main__ import main
from docker_volumes_efs.exceptions import PlacementLookupFailed


@patch.dict("os.environ", {"DOCKER_VOLUMES_EFS_ROOT": "/env/root"})
class TestCliSuite:

    def test_info_json(self, capsys):
        # Execution
        main(["info"])

        # Assertion
        info = json.loads(capsys.readouterr().out)
        assert info["version"] == __version__
        assert info["configuration"]["root"] == "/env/root"

    def test_info_yaml(self, capsys):
        main(["info", "--output", "yaml"])
        assert yaml.safe_load(capsys.readouterr().out)["name"] == "efs"

    def test_serve_flags_override_environment(self):
        # Preparation
        with patch("docker_volumes_efs.plugin.serve") as m_serve, \
                patch("docker_volumes_efs.logging.init_logging") as m_init_logging:

            # Execution
            main(["serve", "--root", "/cli/root", "--subnet", "subnet-cli", "--verbose"])

        # Assertion
        conf = m_serve.call_args.args[0]
        assert str(conf.root) == "/cli/root"
        assert conf.subnet == "subnet-cli"
        m_init_logging.assert_called_once_with(level="debug")

    def test_serve_startup_failure_exits(self):
        # Preparation
        with patch("docker_volumes_efs.plugin.serve", side_effect=PlacementLookupFailed(reason="no IMDS")), \
                patch("docker_volumes_efs.logging.init_logging"):

            # Execution
            with pytest.raises(SystemExit) as exc:
                main(["serve"])

        # Assertion
        assert exc.value.code == 1
