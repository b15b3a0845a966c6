#!/usr/bin/python3
"""
Run the plugin

    python3 -m volumedriver --config /etc/volumedriver/localdriver.conf

"""
