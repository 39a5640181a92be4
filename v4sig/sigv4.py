"""
AWS Signature Version 4 request signing.

The pipeline follows the four documented tasks:
    1. canonical request
    2. string to sign
    3. signing key derivation and signature
    4. Authorization value

see: https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
"""
import datetime
import hashlib
import hmac
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import quote, unquote_to_bytes

import dateutil.parser

from .exceptions import InvalidDate, InvalidQueryString, MissingParameter, SigningError

logger = logging.getLogger(__name__)

Headers = Dict[str, Any]
Body = Union[str, bytes, None]

ALGORITHM = 'AWS4-HMAC-SHA256'
CREDENTIAL_TERMINATION_STRING = 'aws4_request'
DEFAULT_CANONICAL_URI = '/'
DEFAULT_HTTP_REQUEST_METHOD = 'GET'
SIGV4_TIMESTAMP_FORMAT = '%Y%m%dT%H%M%SZ'
EMPTY_SHA256_HASH = 'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'

# RFC 3986 unreserved characters besides ALPHA / DIGIT
UNRESERVED_CHARACTERS = '-_.~'

DATE_HEADER = 'date'
AMZ_DATE_HEADER = 'x-amz-date'
SECURITY_TOKEN_HEADER = 'x-amz-security-token'

# (parameter name, SigningRequest attribute), in validation order
REQUIRED_PARAMETERS: Tuple[Tuple[str, str], ...] = (
    ('awsAccessKeyId', 'access_key_id'),
    ('headers', 'headers'),
    ('queryString', 'query_string'),
    ('region', 'region'),
    ('secretAccessKey', 'secret_access_key'),
    ('service', 'service'),
)
OPTIONAL_PARAMETERS: Tuple[Tuple[str, str], ...] = (
    ('body', 'body'),
    ('canonicalUri', 'canonical_uri'),
    ('httpRequestMethod', 'http_method'),
    ('sessionToken', 'session_token'),
)

_WHITESPACE_RUN = re.compile(r'\s+')

# Distinct fill-ins for date parts a Date header leaves out
_DATE_DEFAULTS = (datetime.datetime(2000, 1, 1), datetime.datetime(2001, 2, 2))


class Service(str, Enum):
    S3 = 's3'
    DYNAMODB = 'dynamodb'
    LAMBDA = 'lambda'
    IAM = 'iam'
    STS = 'sts'
    EC2 = 'ec2'
    SQS = 'sqs'
    SNS = 'sns'
    EXECUTE_API = 'execute-api'
    ES = 'es'


def _service_name(service: Union[str, Service]) -> str:
    return service.value if isinstance(service, Service) else str(service)


def sha256_hex(data: Body) -> str:
    if not data:
        return EMPTY_SHA256_HASH
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def hmac_sha256(key: Union[str, bytes], msg: Union[str, bytes], hex: bool = False) -> Union[str, bytes]:
    if isinstance(key, str):
        key = key.encode('utf-8')
    if isinstance(msg, str):
        msg = msg.encode('utf-8')
    mac = hmac.new(key, msg, hashlib.sha256)
    return mac.hexdigest() if hex else mac.digest()


def trimall(value: Any) -> str:
    """
    Collapse whitespace runs to a single space outside of double quotes,
    leaving quoted text untouched, then strip the result.

    Splitting on '"' puts text outside quotes at the even indexes.
    """
    if value is None:
        return ''
    segments = str(value).split('"')
    for i in range(0, len(segments), 2):
        segments[i] = _WHITESPACE_RUN.sub(' ', segments[i])
    return '"'.join(segments).strip()


def lowercase_headers(headers: Mapping[str, Any]) -> Headers:
    """Fold header names to lowercase. Names differing only by case collapse, last one wins."""
    folded: Headers = {}
    for name, value in headers.items():
        folded[name.lower()] = value
    return folded


def canonical_headers(headers: Mapping[str, Any]) -> str:
    folded = lowercase_headers(headers)
    return ''.join(f'{name}:{trimall(folded[name])}\n' for name in sorted(folded))


def signed_headers(headers: Mapping[str, Any]) -> str:
    return ';'.join(sorted(lowercase_headers(headers)))


def _uri_encode(component: str) -> str:
    # decode first in case the component is already percent-encoded
    return quote(unquote_to_bytes(component), safe=UNRESERVED_CHARACTERS)


def canonical_query_string(query_string: str) -> str:
    """
    Build the canonical query string from an encoded 'k=v&k=v' string.

    Pairs are ordered by their raw text, before re-encoding.
    """
    if not query_string:
        return ''
    canonical_pairs = []
    for pair in sorted(query_string.split('&')):
        parts = pair.split('=')
        if len(parts) != 2:
            raise InvalidQueryString(pair)
        key, value = parts
        canonical_pairs.append(f'{_uri_encode(key)}={_uri_encode(value)}')
    return '&'.join(canonical_pairs)


def basic_iso_date(value: Union[str, datetime.datetime, None] = None) -> str:
    """
    Format a timestamp as basic ISO 8601 in UTC, e.g. 20110909T233600Z.

    Strings may be RFC 1123 dates (as sent in a Date header) or ISO 8601.
    Timestamps without a zone are taken to be UTC, a missing time of day is
    midnight. Strings without a full calendar date raise InvalidDate. With
    no value the current time is used.
    """
    if value is None:
        moment = datetime.datetime.now(datetime.timezone.utc)
    elif isinstance(value, datetime.datetime):
        moment = value
    else:
        try:
            moment, alternate = (dateutil.parser.parse(str(value), default=d) for d in _DATE_DEFAULTS)
        except (ValueError, OverflowError) as e:
            raise InvalidDate(value) from e
        if moment != alternate:
            raise InvalidDate(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.timezone.utc)
    return moment.astimezone(datetime.timezone.utc).strftime(SIGV4_TIMESTAMP_FORMAT)


def canonical_request(
        http_method: str,
        canonical_uri: str,
        canonical_query: str,
        canonical_header_block: str,
        signed_header_list: str,
        payload_hash: str
) -> str:
    return '\n'.join([
        http_method,
        canonical_uri,
        canonical_query,
        canonical_header_block,
        signed_header_list,
        payload_hash,
    ])


def credential_scope(timestamp: str, region: str, service: Union[str, Service]) -> str:
    return '/'.join([
        timestamp[0:8],
        region.lower(),
        _service_name(service).lower(),
        CREDENTIAL_TERMINATION_STRING,
    ])


def credential(access_key_id: str, scope: str) -> str:
    return f'{access_key_id}/{scope}'


def string_to_sign(timestamp: str, scope: str, canonical: str, algorithm: str = ALGORITHM) -> str:
    return '\n'.join([algorithm, timestamp, scope, sha256_hex(canonical)])


def derive_signing_key(secret_access_key: str, date: str, region: str, service: Union[str, Service]) -> bytes:
    # DateKey              = HMAC-SHA256("AWS4"+"<SecretAccessKey>", "<YYYYMMDD>")
    # DateRegionKey        = HMAC-SHA256(<DateKey>, "<aws-region>")
    # DateRegionServiceKey = HMAC-SHA256(<DateRegionKey>, "<aws-service>")
    # SigningKey           = HMAC-SHA256(<DateRegionServiceKey>, "aws4_request")
    k_date = hmac_sha256(f'AWS4{secret_access_key}', date)
    k_region = hmac_sha256(k_date, region)
    k_service = hmac_sha256(k_region, _service_name(service))
    return hmac_sha256(k_service, CREDENTIAL_TERMINATION_STRING)


def calculate_signature(signing_key: bytes, to_sign: str) -> str:
    return hmac_sha256(signing_key, to_sign, hex=True)


def authorization_header(credential_value: str, signed_header_list: str, signature: str) -> str:
    return (
        f'{ALGORITHM} Credential={credential_value},'
        f'SignedHeaders={signed_header_list},Signature={signature}'
    )


@dataclass(frozen=True)
class SigningRequest:
    """The request descriptor for a single signing call."""
    access_key_id: Optional[str]
    secret_access_key: Optional[str]
    region: Optional[str]
    service: Optional[Union[str, Service]]
    headers: Optional[Mapping[str, Any]]
    query_string: Optional[str]
    body: Body = None
    canonical_uri: Optional[str] = None
    http_method: Optional[str] = None
    session_token: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> 'SigningRequest':
        """Build a request from camelCase parameters, e.g. {'awsAccessKeyId': ...}."""
        return cls(**{
            attr: params.get(name)
            for name, attr in REQUIRED_PARAMETERS + OPTIONAL_PARAMETERS
        })

    def validate(self) -> None:
        """Raise MissingParameter for the first absent field; queryString='' is allowed as an empty query."""
        for name, attr in REQUIRED_PARAMETERS:
            value = getattr(self, attr)
            # an empty query string is a request without parameters
            if value is None or (value == '' and attr != 'query_string'):
                raise MissingParameter(name)


@dataclass(frozen=True)
class SigningResult:
    algorithm: str
    authorization: str
    credential: str
    date: str
    signature: str
    signed_headers: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'algorithm': self.algorithm,
            'authorization': self.authorization,
            'credential': self.credential,
            'date': self.date,
            'signature': self.signature,
            'signedHeaders': self.signed_headers,
        }


@dataclass(frozen=True)
class SigningOutcome:
    """Either a SigningResult or the SigningError that prevented it."""
    result: Optional[SigningResult] = None
    error: Optional[SigningError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> SigningResult:
        if self.error is not None:
            raise self.error
        return self.result

    def to_dict(self) -> Dict[str, Any]:
        if self.error is not None:
            return self.error.to_dict()
        return self.result.to_dict()


def _headers_to_sign(request: SigningRequest) -> Tuple[str, Headers]:
    """Resolve the request timestamp and the full header set that gets signed."""
    headers = lowercase_headers(request.headers)
    date_value = headers.get(DATE_HEADER)
    if date_value:
        timestamp = basic_iso_date(date_value)
    else:
        timestamp = basic_iso_date()
        headers[AMZ_DATE_HEADER] = timestamp
    if request.session_token:
        headers[SECURITY_TOKEN_HEADER] = request.session_token
    return timestamp, headers


def sign_request(request: SigningRequest) -> SigningResult:
    """
    Sign a request, raising a SigningError if the input is rejected.

    Required parameters are checked before anything is hashed. The caller's
    headers are not modified; a generated x-amz-date header only exists in
    the signed header set and the returned date.
    """
    request.validate()

    http_method = request.http_method or DEFAULT_HTTP_REQUEST_METHOD
    canonical_uri = request.canonical_uri or DEFAULT_CANONICAL_URI
    service = _service_name(request.service)

    timestamp, headers = _headers_to_sign(request)
    canonical_query = canonical_query_string(request.query_string)
    signed_header_list = signed_headers(headers)

    canonical = canonical_request(
        http_method,
        canonical_uri,
        canonical_query,
        canonical_headers(headers),
        signed_header_list,
        sha256_hex(request.body)
    )
    logger.debug('CanonicalRequest:\n%s', canonical)

    scope = credential_scope(timestamp, request.region, service)
    to_sign = string_to_sign(timestamp, scope, canonical)
    logger.debug('StringToSign:\n%s', to_sign)

    signing_key = derive_signing_key(request.secret_access_key, timestamp[0:8], request.region, service)
    signature = calculate_signature(signing_key, to_sign)
    logger.debug('Signature:\n%s', signature)

    credential_value = credential(request.access_key_id, scope)
    return SigningResult(
        algorithm=ALGORITHM,
        authorization=authorization_header(credential_value, signed_header_list, signature),
        credential=credential_value,
        date=timestamp,
        signature=signature,
        signed_headers=signed_header_list,
    )


def version4(params: Union[Mapping[str, Any], SigningRequest]) -> SigningOutcome:
    """
    Sign a request given as camelCase parameters and report the outcome.

    Rejected input is returned as the outcome's error rather than raised.
    """
    request = params if isinstance(params, SigningRequest) else SigningRequest.from_params(params)
    try:
        result = sign_request(request)
    except SigningError as e:
        logger.debug('Signing request rejected: %s', e.message)
        return SigningOutcome(error=e)
    return SigningOutcome(result=result)


def _set_header(headers: Headers, name: str, value: str) -> None:
    for existing in [k for k in headers if k.lower() == name.lower()]:
        del headers[existing]
    headers[name] = value


class SigV4Signer:
    """Signs requests for one set of credentials, region and service."""

    def __init__(
            self,
            access_key_id: str,
            secret_access_key: str,
            region: str,
            service: Union[str, Service],
            token: Optional[str] = None
    ) -> None:
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.region = region
        self.service = service
        self.token = token

    def _request(
            self,
            headers: Optional[Mapping[str, Any]],
            query_string: Optional[str],
            body: Body,
            canonical_uri: str,
            http_method: str
    ) -> SigningRequest:
        return SigningRequest(
            access_key_id=self.access_key_id,
            secret_access_key=self.secret_access_key,
            region=self.region,
            service=self.service,
            headers=headers,
            query_string=query_string,
            body=body,
            canonical_uri=canonical_uri,
            http_method=http_method,
            session_token=self.token,
        )

    def sign(
            self,
            headers: Mapping[str, Any],
            query_string: str,
            body: Body = None,
            canonical_uri: str = DEFAULT_CANONICAL_URI,
            http_method: str = DEFAULT_HTTP_REQUEST_METHOD
    ) -> SigningResult:
        return sign_request(self._request(headers, query_string, body, canonical_uri, http_method))

    def create_headers(
            self,
            headers: Mapping[str, Any],
            query_string: str,
            body: Body = None,
            canonical_uri: str = DEFAULT_CANONICAL_URI,
            http_method: str = DEFAULT_HTTP_REQUEST_METHOD
    ) -> Headers:
        """
        Return a copy of headers carrying everything that was signed, plus
        the Authorization header.
        """
        result = self.sign(headers, query_string, body, canonical_uri, http_method)

        signed = dict(headers)
        if not lowercase_headers(headers).get(DATE_HEADER):
            _set_header(signed, 'X-Amz-Date', result.date)
        if self.token:
            _set_header(signed, 'X-Amz-Security-Token', self.token)
        _set_header(signed, 'Authorization', result.authorization)
        return signed
