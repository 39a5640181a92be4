"""
Command line adapter for the signer.

Reads a JSON object of signing parameters (the same camelCase names the
``version4`` function accepts), lets flags override individual values and
prints the result as JSON. Credentials and region fall back to the standard
AWS environment variables.
"""
import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from . import __version__
from .sigv4 import version4

logger = logging.getLogger(__name__)

ENVIRONMENT_DEFAULTS = (
    ('awsAccessKeyId', ('AWS_ACCESS_KEY_ID',)),
    ('secretAccessKey', ('AWS_SECRET_ACCESS_KEY',)),
    ('sessionToken', ('AWS_SESSION_TOKEN',)),
    ('region', ('AWS_REGION', 'AWS_DEFAULT_REGION')),
)


def _parse_header(value: str) -> tuple:
    name, sep, header_value = value.partition(':')
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Invalid header {value!r}, expected 'Name: value'")
    return name.strip(), header_value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='v4sig',
        description='Compute an AWS Signature Version 4 Authorization value.'
    )
    parser.add_argument('--params', metavar='FILE',
                        help="JSON file with signing parameters, '-' for stdin")
    parser.add_argument('--access-key-id', dest='awsAccessKeyId')
    parser.add_argument('--secret-access-key', dest='secretAccessKey')
    parser.add_argument('--session-token', dest='sessionToken')
    parser.add_argument('--region', dest='region')
    parser.add_argument('--service', dest='service')
    parser.add_argument('--query-string', dest='queryString',
                        help="encoded query string, e.g. 'foo=bar&baz=1'")
    parser.add_argument('--method', dest='httpRequestMethod')
    parser.add_argument('--canonical-uri', dest='canonicalUri')
    parser.add_argument('-H', '--header', dest='header', action='append', type=_parse_header, default=[],
                        help="request header as 'Name: value', may be repeated")
    body = parser.add_mutually_exclusive_group()
    body.add_argument('--data', help='request body text')
    body.add_argument('--data-file', metavar='FILE', help='file holding the request body')
    parser.add_argument('--debug', action='store_true', help='log the canonical request and string to sign')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def _load_params(path: Optional[str]) -> Dict[str, Any]:
    if not path:
        return {}
    if path == '-':
        params = json.load(sys.stdin)
    else:
        with open(path, 'r') as f:
            params = json.load(f)
    if not isinstance(params, dict):
        raise ValueError('signing parameters must be a JSON object')
    return params


def collect_params(args: argparse.Namespace, environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Merge parameters: flags over the JSON file over the environment."""
    environ = os.environ if environ is None else environ
    params = _load_params(args.params)

    for name in ('awsAccessKeyId', 'secretAccessKey', 'sessionToken', 'region', 'service',
                 'queryString', 'httpRequestMethod', 'canonicalUri'):
        value = getattr(args, name)
        if value is not None:
            params[name] = value

    if args.header:
        headers = dict(params.get('headers') or {})
        headers.update(args.header)
        params['headers'] = headers

    if args.data is not None:
        params['body'] = args.data
    elif args.data_file:
        with open(args.data_file, 'rb') as f:
            params['body'] = f.read()

    for name, variables in ENVIRONMENT_DEFAULTS:
        if params.get(name):
            continue
        for variable in variables:
            if environ.get(variable):
                params[name] = environ[variable]
                break

    return params


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format='%(asctime)s %(name)s %(levelname)s %(message)s')

    try:
        params = collect_params(args)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    outcome = version4(params)
    if not outcome.ok:
        logger.debug('Signing failed: %s', outcome.error.message)
        print(json.dumps(outcome.to_dict()), file=sys.stderr)
        return 1

    print(json.dumps(outcome.to_dict(), indent=2))
    return 0
