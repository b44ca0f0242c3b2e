import base64
import json

import httpx
import pytest

from mqhttp.errors import BodyReadError, DecodeError
from mqhttp.protocol import envelope
from mqhttp.protocol.envelope import ErrorEnvelope, RequestEnvelope, ResponseEnvelope

from upstream import BrokenStream


def test_request_round_trip():

    original = RequestEnvelope('PUT', 'http://example.test/a/b?c=d', {'x-one': '1', 'accept': '*/*'}, b'\x00\xff\xfebinary')

    decoded = envelope.decode_request(envelope.encode_request(original))

    assert decoded.method == 'PUT'
    assert decoded.url == 'http://example.test/a/b?c=d'
    assert decoded.header == {'x-one': '1', 'accept': '*/*'}
    assert decoded.body == b'\x00\xff\xfebinary'
    assert decoded == original


def test_request_from_httpx():

    request = httpx.Request('POST', 'http://example.test/submit', headers={'X-Token': 'abc'}, content=b'{}')

    decoded = envelope.decode_request(envelope.encode_request(request))

    assert decoded.method == 'POST'
    assert decoded.url == 'http://example.test/submit'
    assert decoded.body == b'{}'

    # httpx fills in Host and Content-Length on its own; names are lower case.
    assert decoded.header['x-token'] == 'abc'
    assert decoded.header['host'] == 'example.test'
    assert decoded.header['content-length'] == '2'


def test_header_collapse():
    """ Only the first value of a repeated header survives encoding. This
        is a deliberate, one-way loss.
    """

    headers = [('X-Multi', 'a'), ('X-Multi', 'b'), ('x-multi', 'c'), ('X-Single', 'z')]
    request = httpx.Request('GET', 'http://example.test/', headers=headers)

    decoded = envelope.decode_request(envelope.encode_request(request))

    assert decoded.header['x-multi'] == 'a'
    assert decoded.header['x-single'] == 'z'

    rebuilt = httpx.Request(decoded.method, decoded.url, headers=decoded.header)
    assert rebuilt.headers.get_list('x-multi') == ['a']
    assert rebuilt.headers.get_list('x-multi') != request.headers.get_list('x-multi')


def test_collapse_headers():

    collapsed = envelope.collapse_headers([('A', '1'), ('b', '2'), ('a', '3')])
    assert collapsed == {'a': '1', 'b': '2'}

    assert envelope.collapse_headers([]) == {}


def test_body_is_base64_on_the_wire():

    body = bytes(range(256))
    encoded = envelope.encode_request(RequestEnvelope('POST', 'http://example.test/', {}, body))

    decoded = json.loads(encoded)
    assert decoded['body'] == base64.b64encode(body).decode()
    assert decoded['header'] == {}
    assert decoded['method'] == 'POST'


def test_optional_request_fields():

    decoded = envelope.decode_request(b'{"method": "GET", "url": "http://example.test/"}')
    assert decoded.header == {}
    assert decoded.body == b''

    decoded = envelope.decode_request(b'{"method": "GET", "url": "http://example.test/", "header": null, "body": null}')
    assert decoded.header == {}
    assert decoded.body == b''


def test_malformed_request():

    malformed = (
        b'',
        b'not json at all',
        b'[]',
        b'{"url": "http://example.test/"}',
        b'{"method": "GET"}',
        b'{"method": "", "url": "http://example.test/"}',
        b'{"method": 5, "url": "http://example.test/"}',
        b'{"method": "GET", "url": "http://example.test/", "header": {"a": 1}}',
        b'{"method": "GET", "url": "http://example.test/", "body": "not base64!"}',
    )

    for payload in malformed:
        with pytest.raises(DecodeError):
            envelope.decode_request(payload)


def test_unreadable_request_body():

    request = httpx.Request('POST', 'http://example.test/', stream=BrokenStream())

    with pytest.raises(BodyReadError):
        envelope.encode_request(request)


def test_response_round_trip():

    original = ResponseEnvelope(200, {'content-type': 'text/plain'}, b'hello')
    encoded = envelope.encode_response(original)

    on_the_wire = json.loads(encoded)
    assert on_the_wire['kind'] == 'response'
    assert on_the_wire['statusCode'] == 200

    decoded = envelope.decode_response(encoded)
    assert isinstance(decoded, ResponseEnvelope)
    assert decoded == original


def test_error_is_distinguishable():

    encoded = envelope.encode_response(ErrorEnvelope('upstream call failed: refused', 'upstream'))

    on_the_wire = json.loads(encoded)
    assert on_the_wire['kind'] == 'error'
    assert on_the_wire['error'] == 'upstream call failed: refused'

    decoded = envelope.decode_response(encoded)
    assert isinstance(decoded, ErrorEnvelope)
    assert decoded.code == 'upstream'


def test_untagged_reply():
    """ Replies must say what they are; shape-sniffing is not attempted.
    """

    with pytest.raises(DecodeError):
        envelope.decode_response(b'{"error": "invalid request"}')

    with pytest.raises(DecodeError):
        envelope.decode_response(b'{"statusCode": 200, "header": {}, "body": ""}')

    with pytest.raises(DecodeError):
        envelope.decode_response(b'{"kind": "surprise", "statusCode": 200}')


def test_optional_response_fields():

    decoded = envelope.decode_response(b'{"kind": "response", "statusCode": 204}')

    assert isinstance(decoded, ResponseEnvelope)
    assert decoded.status_code == 204
    assert decoded.header == {}
    assert decoded.body == b''


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
