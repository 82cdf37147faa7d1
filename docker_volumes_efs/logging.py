import logging
from plumbum.commands.modifiers import PipeToLoggerMixin


@logging.setLoggerClass
class Logger(logging.Logger, PipeToLoggerMixin):
    pass


logger = logging.getLogger("docker-volumes-efs")


def init_logging(level):
    logging.basicConfig(
        level=level.upper(),
        format="{asctime}|{levelname:7}|{thread:X}|{name:15}| {message}",
        style="{"
    )
    # boto and docker are chatty on DEBUG
    for name in ("botocore", "boto3", "urllib3", "docker"):
        logging.getLogger(name).setLevel(max(logging.INFO, logging.getLogger().level))
