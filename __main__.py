"""
Entry point for GroupChat application.
This module provides a command-line interface to start the chat server and the admin api.
"""

import argparse

from GroupChat.config import config
from GroupChat.start import api, server


def parse():
    # Initialize argument parser for command line interface
    parser = argparse.ArgumentParser(prog='GroupChat', description='GroupChat starter')
    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # Setup server command line arguments
    server_parser = subparsers.add_parser('server', help='Startup SERVER (ws server and admin api)')
    server_parser.add_argument('--host', default=config.DEFAULT_HOST,
                               help=f'SERVER listening address (default: {config.DEFAULT_HOST})')
    server_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                               help=f'SERVER port, the api listens on port + 1 (default: {config.DEFAULT_SERVER_PORT})')

    # Add 'srv-only' command
    srv_parser = subparsers.add_parser('srv-only', help='Startup server (ws server)')
    srv_parser.add_argument('--host', default=config.DEFAULT_HOST,
                            help=f'server listening address (default: {config.DEFAULT_HOST})')
    srv_parser.add_argument('--port', type=int, default=config.DEFAULT_SERVER_PORT,
                            help=f'server port (default: {config.DEFAULT_SERVER_PORT})')

    # Add 'api-only' command
    api_parser = subparsers.add_parser('api-only', help='Startup admin api')
    api_parser.add_argument('--port', type=int, default=config.DEFAULT_API_PORT,
                            help=f'api server port (default: {config.DEFAULT_API_PORT})')

    args = parser.parse_args()

    return args


def main():
    args = parse()

    if args.command == 'server':
        server.server(port=args.port, host=args.host)
    elif args.command == 'srv-only':
        server.server(port=args.port, srv_only=True, host=args.host)
    elif args.command == 'api-only':
        api.api(port=args.port)
    else:
        raise Exception('Unknown command')


if __name__ == '__main__':
    main()
