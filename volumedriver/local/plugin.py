# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Implements a docker volume plugin that keeps volumes in local directories

    See https://docs.docker.com/engine/extend/plugins_volume/

    Routes (all POST, JSON bodies):
        /Plugin.Activate                    - {"Implements": ["VolumeDriver"]}
        /VolumeDriver.Create                - {"Name": ..., "Opts": {...}}
        /VolumeDriver.Remove                - {"Name": ...}
        /VolumeDriver.Mount                 - {"Name": ..., "ID": ...}
        /VolumeDriver.Unmount               - {"Name": ..., "ID": ...}
        /VolumeDriver.Path                  - {"Name": ...}
        /VolumeDriver.Get                   - {"Name": ...}
        /VolumeDriver.List                  - {}
        /VolumeDriver.Capabilities          - {}

    Config (/etc/volumedriver/localdriver.conf, yaml, every key optional):
        listenAddr                          - host:port or unix socket path to serve on
        transport                           - tcp, tcp-json or unix
        mountDir                            - Where _volumes and _mounts are created
        driversPath                         - Where to write the driver spec file (empty: don't)
        uniqueVolumeIds                     - Volume names are <prefix>_<suffix> (tcp-json only)
        requireSSL                          - Serve https using certFile/keyFile/caFile
        clientCertFile/clientKeyFile        - Advertised to clients in the json spec
        insecureSkipVerify                  - Advertised to clients in the json spec
        fsType                              - Which volumedriver.local.filesystem handler to use
        exitOnFatal                         - Stop serving when the driver hits an unrecoverable error
        log.target                          - syslog or stderr
        log.level                           - DEBUG, INFO, ...
"""

import argparse
import json
import logging
import logging.handlers
import os
import sys
import threading
import time
import traceback
import types
from copy import deepcopy
import yaml

from .driver import LocalDriver
from .filesystem import get_handler
from .exceptions import ConfigError, FSHandlerFSTypeNotSupported, OperationFailureError, OperationInvalidOptionsError

CONFIG_PATH = "/etc/volumedriver/localdriver.conf"

DEFAULT_CONFIG = {
    "listenAddr": "0.0.0.0:9750",
    "transport": "tcp",
    "mountDir": "/tmp/volumes",
    "driversPath": "",
    "uniqueVolumeIds": False,
    "requireSSL": False,
    "caFile": "",
    "certFile": "",
    "keyFile": "",
    "clientCertFile": "",
    "clientKeyFile": "",
    "insecureSkipVerify": False,
    "fsType": "posix",
    "exitOnFatal": True,
    "log": {
        "target": "syslog",
        "level": "DEBUG",
    },
}

TRANSPORTS = ("tcp", "tcp-json", "unix")

ROUTES = {
    "/Plugin.Activate": "activate",
    "/VolumeDriver.Create": "create",
    "/VolumeDriver.Remove": "remove",
    "/VolumeDriver.Mount": "mount",
    "/VolumeDriver.Unmount": "unmount",
    "/VolumeDriver.Path": "path",
    "/VolumeDriver.Get": "get",
    "/VolumeDriver.List": "list",
    "/VolumeDriver.Capabilities": "capabilities",
}

def merge_config(cfg):
    """ Fill in defaults for anything cfg leaves out """
    if cfg is None:
        cfg = {}

    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a mapping, got {}".format(type(cfg).__name__))

    merged = deepcopy(DEFAULT_CONFIG)

    for key, value in cfg.items():
        if key == "log" and isinstance(value, dict):
            merged["log"].update(value)
        else:
            merged[key] = value

    if merged["transport"] not in TRANSPORTS:
        raise ConfigError("Unknown transport '{}', expected one of {}".format(merged["transport"], ", ".join(TRANSPORTS)))

    return merged

def load_config(path=CONFIG_PATH):
    """ Load yaml config, a missing file means all defaults """
    if not os.path.exists(path):
        return merge_config({})

    try:
        with open(path) as fobj:
            cfg = yaml.safe_load(fobj)
    except yaml.YAMLError as err:
        raise ConfigError("Unable to parse {}: {}".format(path, err))

    return merge_config(cfg)

class Plugin(object):
    """ Implements the volume plugin operations """

    def __init__(self, config=None, logger=None, log_stream=None, fs_handler=None):
        if config is None:
            self.config = load_config()
        else:
            self.config = merge_config(config)

        self.server = None
        self.fatal_error = None

        if logger:
            self.log = logger
        else:
            self.log = logging.getLogger("local-volume")
            self.log.setLevel(self.config["log"]["level"])

            # Shared logger, only the first Plugin in the process attaches a handler
            if not self.log.handlers:
                if log_stream != None or self.config["log"]["target"] == "stderr":
                    handler = logging.StreamHandler(stream=log_stream or sys.stderr)
                else:
                    handler = logging.handlers.SysLogHandler(address='/dev/log', facility=logging.handlers.SysLogHandler.LOG_DAEMON)

                    handler.ident = 'local-volume'

                handler.setFormatter(logging.Formatter('[%(process)d] %(levelname)s %(message)s'))

                self.log.addHandler(handler)

        self.log.debug("Starting local-volume class")

        self.fs_handler = fs_handler or get_handler(self.config["fsType"], log=self.log)

        # Older volume managers only understand unique ids via the json spec
        unique_volume_ids = bool(self.config["uniqueVolumeIds"]) and self.config["transport"] == "tcp-json"

        self.driver = LocalDriver(self.fs_handler, self.config["mountDir"], unique_volume_ids=unique_volume_ids, logger=self.log)

    def response(self, driver_response):
        """ Build (and log) the json body for a driver response """
        resp = driver_response.to_dict()

        self.log.info("Response: %s", json.dumps(resp))

        if driver_response.fatal:
            self.fatal(driver_response.err)

        return resp

    def fatal(self, message):
        """ Driver hit an unrecoverable error, stop serving if configured to """
        self.log.critical("fatal-err-aborting: %s", message)

        self.fatal_error = message

        if self.config["exitOnFatal"] and self.server is not None:
            # shutdown() blocks until serve_forever returns, can't call it from a request thread
            threading.Thread(target=self.server.shutdown, daemon=True).start()

    def handle_request(self, path, body):
        """ Map an http request onto an operation, returns (http status, json body) """
        operation = ROUTES.get(path)

        if operation is None:
            self.log.warning("Unknown route: %s", path)
            return 404, {"Err": "Unknown operation: {}".format(path)}

        return 200, self.run_operation(operation, body)

    def run_operation(self, operation, body=None):
        """ Run a single plugin operation """
        handler_name = 'op_' + operation

        if handler_name not in dir(self):
            return {"Err": "Unknown operation: {}".format(operation)}

        handler = getattr(self, handler_name)

        if not callable(handler):
            return {"Err": "Invalid operation: {}".format(operation)}

        try:
            start_time = time.time()

            result = handler(self.parse_request(body))

            delta_time = time.time() - start_time

            if not result.get("Err"):
                self.log.info("%s SUCCESS after %.03f second(s)", operation, delta_time)
            else:
                self.log.error("%s FAILED after %.03f second(s)", operation, delta_time)

            return result
        except OperationFailureError as op_err:
            return {"Err": op_err.message}
        except OperationInvalidOptionsError as op_err:
            return {"Err": "Invalid request: %s" % op_err.message}
        except Exception: # pylint: disable=broad-except
            self.log.error("Exception Calling %s(%s)\n%s", handler_name, body, traceback.format_exc())
            return {"Err": "Driver error, check syslog for details."}

    def parse_request(self, body): # pylint: disable=no-self-use
        """ Parse the json request body """
        if isinstance(body, bytes):
            body = body.decode("utf-8")

        if body is None or not body.strip():
            req = {}
        else:
            try:
                req = json.loads(body)
            except ValueError as err:
                raise OperationInvalidOptionsError("Unable to decode json: %s" % err)

        if not isinstance(req, dict):
            raise OperationInvalidOptionsError("Expected a json object")

        name = req.get("Name")

        if name is None:
            name = ""
        elif not isinstance(name, str):
            raise OperationInvalidOptionsError("Name must be a string, got {}".format(type(name).__name__))

        return types.SimpleNamespace(**{
            "name": name,
            "id": req.get("ID") or "",
            "opts": req.get("Opts") or {},
        })

    def op_activate(self, request): # pylint: disable=unused-argument
        """ Handle Plugin.Activate """
        self.log.info("activate called")

        return self.response(self.driver.activate(log=self.log))

    def op_capabilities(self, request): # pylint: disable=unused-argument
        """ Handle VolumeDriver.Capabilities """
        return self.response(self.driver.capabilities(log=self.log))

    def op_create(self, request):
        """ Handle VolumeDriver.Create, Opts are accepted and ignored """
        self.log.info("op_create: name: %s opts: %s", request.name, request.opts)

        return self.response(self.driver.create(request.name, log=self.log))

    def op_mount(self, request):
        """ Handle VolumeDriver.Mount """
        self.log.info("op_mount: name: %s id: %s", request.name, request.id)

        return self.response(self.driver.mount(request.name, log=self.log))

    def op_unmount(self, request):
        """ Handle VolumeDriver.Unmount """
        self.log.info("op_unmount: name: %s id: %s", request.name, request.id)

        return self.response(self.driver.unmount(request.name, log=self.log))

    def op_path(self, request):
        """ Handle VolumeDriver.Path """
        return self.response(self.driver.path(request.name, log=self.log))

    def op_get(self, request):
        """ Handle VolumeDriver.Get """
        return self.response(self.driver.get(request.name, log=self.log))

    def op_list(self, request): # pylint: disable=unused-argument
        """ Handle VolumeDriver.List """
        return self.response(self.driver.list(log=self.log))

    def op_remove(self, request):
        """ Handle VolumeDriver.Remove """
        self.log.info("op_remove: name: %s", request.name)

        return self.response(self.driver.remove(request.name, log=self.log))

def parse_args(args):
    """ Command line flags, each overrides the matching config key """
    parser = argparse.ArgumentParser(prog="localdriver", description="Local directory docker volume plugin")

    parser.add_argument("--config", default=CONFIG_PATH, help="yaml config file (default: %(default)s)")
    parser.add_argument("--listenAddr", help="host:port (or socket path for unix) to serve volume management functions")
    parser.add_argument("--transport", choices=TRANSPORTS, help="Transport protocol to transmit HTTP over")
    parser.add_argument("--mountDir", help="Path to directory where local volumes are created")
    parser.add_argument("--driversPath", help="Path to directory where drivers are installed")
    parser.add_argument("--uniqueVolumeIds", action="store_true", default=None, help="Opt-in to unique volume ids")
    parser.add_argument("--requireSSL", action="store_true", default=None, help="Require ssl-secured communication")
    parser.add_argument("--caFile", help="Certificate authority file for ssl authentication")
    parser.add_argument("--certFile", help="Public key file for ssl authentication")
    parser.add_argument("--keyFile", help="Private key file for ssl authentication")
    parser.add_argument("--clientCertFile", help="Public key file for client ssl authentication")
    parser.add_argument("--clientKeyFile", help="Private key file for client ssl authentication")
    parser.add_argument("--insecureSkipVerify", action="store_true", default=None,
                        help="Clients may skip verification of server IP addresses in the certificate")

    return parser.parse_args(args)

def Run(args):
    """ Serve the plugin until interrupted, returns exit status """
    from .server import make_server, serve
    from .spec_file import advertise

    flags = parse_args(args)

    try:
        config = load_config(flags.config)

        for key, value in vars(flags).items():
            if key != "config" and value is not None:
                config[key] = value

        plugin = Plugin(config=config)
    except (ConfigError, FSHandlerFSTypeNotSupported) as err:
        print("localdriver: {}".format(err.message), file=sys.stderr)
        return 2

    try:
        advertise(plugin.log, plugin.config)

        server = make_server(plugin, plugin.config)
    except (OSError, ValueError) as err:
        plugin.log.critical("fatal-err-aborting: %s", err)
        return 1

    return serve(plugin, server)
