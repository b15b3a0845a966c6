# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Driver spec files

    The volume manager finds drivers by looking for <name>.spec (a plain URL)
    or <name>.json (a JSON document, see driver_spec) in its drivers path.
"""

import json
import os

DRIVER_NAME = "localdriver"

# pylint: disable=too-many-arguments
def driver_spec(name, address, unique_volume_ids=False, tls=None):
    """ JSON driver spec, tls is a dict of InsecureSkipVerify/CAFile/CertFile/KeyFile """
    spec = {
        "Name": name,
        "Addr": address,
        "UniqueVolumeIds": unique_volume_ids,
    }

    if tls:
        spec["TLSConfig"] = tls

    return json.dumps(spec)

def write_driver_spec(log, drivers_path, name, extension, contents):
    """ Write contents to drivers_path/name.extension, returns the file path """
    os.makedirs(drivers_path, mode=0o755, exist_ok=True)

    spec_path = os.path.join(drivers_path, "{}.{}".format(name, extension))

    log.info("writing-spec-file: %s", spec_path)

    if isinstance(contents, str):
        contents = contents.encode("utf-8")

    with open(spec_path, "wb") as fobj:
        fobj.write(contents)

    return spec_path

def advertise(log, config):
    """ Write the spec file for the configured transport, None if there isn't one """
    transport = config["transport"]

    if transport == "unix" or not config["driversPath"]:
        return None

    address = "http://" + config["listenAddr"]

    if transport == "tcp-json":
        tls = None

        if config["requireSSL"]:
            tls = {
                "InsecureSkipVerify": config["insecureSkipVerify"],
                "CAFile": os.path.abspath(config["caFile"]),
                "CertFile": os.path.abspath(config["clientCertFile"]),
                "KeyFile": os.path.abspath(config["clientKeyFile"]),
            }
            address = "https://" + config["listenAddr"]

        contents = driver_spec(DRIVER_NAME, address, config["uniqueVolumeIds"], tls)

        return write_driver_spec(log, config["driversPath"], DRIVER_NAME, "json", contents)

    return write_driver_spec(log, config["driversPath"], DRIVER_NAME, "spec", address)
