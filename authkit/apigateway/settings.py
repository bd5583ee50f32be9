from __future__ import annotations
import os

from authkit import __version__

APP_NAME = "authkit-apigateway"
APP_VERSION = os.getenv("APP_VERSION", __version__)
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
