# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" HTTP transport for the plugin (tcp, tcp-json and unix sockets) """

import json
import os
import signal
import socketserver
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

CONTENT_TYPE = "application/vnd.docker.plugins.v1+json"

class DriverRequestHandler(BaseHTTPRequestHandler):
    """ Hand every POST to the plugin """
    server_version = "localdriver"
    protocol_version = "HTTP/1.1"

    def do_POST(self): # pylint: disable=invalid-name
        """ Plugin requests are always POST """
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""

        status, resp = self.server.plugin.handle_request(self.path, body)

        self.send_json(status, resp)

    def send_json(self, status, resp):
        """ Write json response """
        data = json.dumps(resp).encode("utf-8")

        self.send_response(status)
        self.send_header("Content-Type", CONTENT_TYPE)
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def log_message(self, format, *args): # pylint: disable=redefined-builtin
        self.server.plugin.log.debug("http: " + format, *args)

class DriverHTTPServer(ThreadingHTTPServer):
    """ tcp / tcp-json transport """
    daemon_threads = True

    def __init__(self, address, plugin):
        self.plugin = plugin
        super(DriverHTTPServer, self).__init__(address, DriverRequestHandler)

class DriverUnixHTTPServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    """ unix socket transport """
    daemon_threads = True

    def __init__(self, socket_path, plugin):
        self.plugin = plugin

        # stale socket from a previous run
        if os.path.exists(socket_path):
            os.remove(socket_path)

        super(DriverUnixHTTPServer, self).__init__(socket_path, DriverRequestHandler)

    def server_close(self):
        super(DriverUnixHTTPServer, self).server_close()

        if os.path.exists(self.server_address):
            os.remove(self.server_address)

def parse_listen_addr(listen_addr):
    """ "host:port" -> (host, port) """
    host, sep, port = listen_addr.rpartition(":")

    if not sep or not port.isdigit():
        raise ValueError("listenAddr must be host:port, got '{}'".format(listen_addr))

    return host, int(port)

def tls_context(cert_file, key_file, ca_file=None):
    """ Server side TLS, client certificates are required when a CA is given """
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    context.load_cert_chain(cert_file, key_file)

    if ca_file:
        context.load_verify_locations(ca_file)
        context.verify_mode = ssl.CERT_REQUIRED

    return context

def make_server(plugin, config):
    """ Build the server for the configured transport, not yet serving """
    if config["transport"] == "unix":
        server = DriverUnixHTTPServer(config["listenAddr"], plugin)
    else:
        server = DriverHTTPServer(parse_listen_addr(config["listenAddr"]), plugin)

        if config["requireSSL"]:
            context = tls_context(config["certFile"], config["keyFile"], config["caFile"])
            server.socket = context.wrap_socket(server.socket, server_side=True)

    plugin.server = server

    plugin.log.info("listening: %s (%s)", config["listenAddr"], config["transport"])

    return server

def serve(plugin, server):
    """ serve_forever until SIGTERM/SIGINT or a fatal driver error """
    def _terminate(signum, frame): # pylint: disable=unused-argument
        plugin.log.info("signal %d, shutting down", signum)
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGTERM, _terminate)
    signal.signal(signal.SIGINT, _terminate)

    plugin.log.info("started")

    try:
        server.serve_forever()
    finally:
        server.server_close()
        plugin.log.info("ends")

    if plugin.fatal_error is not None:
        return 1

    return 0
