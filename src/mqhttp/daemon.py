""" Command-line entry points: ``serve`` runs the executor side of the
    bridge, ``get`` issues a single bridged GET and prints the body.
"""

import argparse
import logging
import sys
import threading

import httpx

from . import channel
from . import client
from . import config
from . import server


logger = logging.getLogger(__name__)


def main(argv=None):

    arguments = parse_arguments(argv)

    if arguments.verbose > 1:
        level = logging.DEBUG
    elif arguments.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format='%(asctime)s %(name)s %(levelname)s %(message)s')

    try:
        connection = channel.connect(arguments.broker, workers=arguments.workers)
    except Exception as e:
        logger.error("cannot connect to %s: %s", arguments.broker, e)
        return 1

    try:
        return arguments.command(connection, arguments)
    finally:
        connection.close()


def parse_arguments(argv, defaults=None):
    """ Parse the command line. Defaults come from the MQHTTP_* environment
        variables unless *defaults* is given; a malformed environment is
        reported the same way as a malformed argument.
    """

    problem = None
    if defaults is None:
        try:
            defaults = config.Config.from_environ()
        except ValueError as e:
            problem = str(e)
            defaults = config.Config()

    parser = argparse.ArgumentParser(prog='mqhttp', description='HTTP over a message broker.')
    parser.add_argument('-b', '--broker', default=defaults.broker_url,
                        help='broker URL (default: %(default)s)')
    parser.add_argument('-s', '--subject', default=defaults.subject,
                        help='request subject (default: %(default)s)')
    parser.add_argument('-w', '--workers', type=int, default=defaults.workers,
                        help='concurrent message handlers (default: %(default)s)')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='log more; repeat for debug output')

    commands = parser.add_subparsers(dest='name', required=True)

    serve_parser = commands.add_parser('serve', help='execute requests arriving on the subject')
    serve_parser.set_defaults(command=serve)

    get_parser = commands.add_parser('get', help='fetch a URL through the bridge')
    get_parser.add_argument('url')
    get_parser.add_argument('-t', '--timeout', type=float, default=defaults.timeout,
                            help='seconds to wait for the reply (default: %(default)s)')
    get_parser.set_defaults(command=get)

    if problem is not None:
        parser.error(problem)

    return parser.parse_args(argv)


def serve(connection, arguments, stop_event=None):

    if stop_event is None:
        stop_event = threading.Event()

    executor = server.start(connection, arguments.subject)

    try:
        while not stop_event.wait(1):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        executor.stop()

    return 0


def get(connection, arguments):

    transport = client.Transport(connection, arguments.subject, arguments.timeout)

    with httpx.Client(transport=transport, timeout=arguments.timeout) as session:
        try:
            response = session.get(arguments.url)
        except httpx.HTTPError as e:
            sys.stderr.write('%s: %s\n' % (type(e).__name__, e))
            return 1

    sys.stdout.buffer.write(response.content)
    sys.stdout.flush()

    if response.is_error:
        return 2
    return 0
