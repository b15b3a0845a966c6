# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Simple defs for command line entry points

    The volume manager finds the driver through the spec file written to
    --driversPath, the driver itself just needs to be running:

    localdriver --mountDir /var/vcap/data/volumes --driversPath /var/vcap/data/voldrivers
"""

import sys

def run_plugin():
    """ Run local volume plugin """
    from volumedriver.local.plugin import Run
    return Run(sys.argv[1:])
