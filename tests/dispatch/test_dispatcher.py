import asyncio
import json
from unittest.mock import Mock

import pytest

from conftest import FakeTransport, ok
from fetch_dispatch.core.exceptions import (
    FetchTimeoutError,
    HttpStatusError,
    NoResponseError,
    TransportError,
)
from fetch_dispatch.dispatch.dispatcher import FetchDispatcher
from fetch_dispatch.dispatch.schema import Blank, Body, Error, RequestOptions, TransportResponse

URL = "https://ok.example/a"


def callbacks():
    return Mock(name="on_blank"), Mock(name="on_body"), Mock(name="on_error")


def assert_exactly_one(*mocks):
    assert sum(m.call_count for m in mocks) == 1


# ---------------- Construction de la requête ----------------

def test_build_request_uses_default_options(make_dispatcher):
    dispatcher = make_dispatcher()
    request = dispatcher.build_request(URL)

    assert request.url == URL
    assert request.method == "GET"
    assert request.options.connect_timeout == 5
    assert request.options.inactivity_timeout == 10
    assert request.options.redirects == 5
    assert request.options.keepalive is True
    assert request.options.tls.verify_peer is False
    assert request.options.headers == {"Accept": "*/*"}


def test_build_request_gives_each_request_its_own_id(make_dispatcher):
    dispatcher = make_dispatcher()
    assert dispatcher.build_request(URL).id != dispatcher.build_request(URL).id


def test_build_request_with_overrides_keeps_defaults_untouched(mock_logger):
    options = RequestOptions()
    dispatcher = FetchDispatcher(transport=FakeTransport(), logger=mock_logger, options=options)

    request = dispatcher.build_request(URL, connect_timeout=1.5)

    assert request.options.connect_timeout == 1.5
    assert dispatcher.options.connect_timeout == 5


# ---------------- Classification ----------------

@pytest.mark.asyncio
async def test_body_routes_to_on_body(make_dispatcher):
    dispatcher = make_dispatcher({URL: ok("hello")})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome, Body)
    on_body.assert_called_once_with("hello")
    on_blank.assert_not_called()
    on_error.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["", None, "   \n\t"])
async def test_blank_routes_to_on_blank(make_dispatcher, body):
    dispatcher = make_dispatcher({URL: ok(body)})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome, Blank)
    on_blank.assert_called_once_with(body)
    on_body.assert_not_called()
    on_error.assert_not_called()


@pytest.mark.asyncio
async def test_redirect_terminal_status_is_success(make_dispatcher):
    dispatcher = make_dispatcher({URL: ok("moved", status_code=304)})
    on_blank, on_body, on_error = callbacks()

    await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    on_body.assert_called_once_with("moved")


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [404, 500, 503])
async def test_bad_status_routes_to_error(make_dispatcher, mock_logger, status_code):
    dispatcher = make_dispatcher({URL: ok("Not Found", status_code=status_code)})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome, Error)
    assert isinstance(outcome.cause, HttpStatusError)
    assert outcome.cause.status_code == status_code
    assert str(outcome.cause) == f"HTTP request failed: {status_code}"
    on_error.assert_called_once_with(outcome.cause)
    on_blank.assert_not_called()
    on_body.assert_not_called()
    mock_logger.debug.assert_called_once()


@pytest.mark.asyncio
async def test_timeout_routes_to_error_even_with_partial_body(make_dispatcher):
    timed_out = TransportResponse(url="", status_code=200, body="partial", timed_out=True)
    dispatcher = make_dispatcher({URL: timed_out})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome.cause, FetchTimeoutError)
    assert "time out" in str(outcome.cause)
    assert_exactly_one(on_blank, on_body, on_error)
    on_error.assert_called_once()


@pytest.mark.asyncio
async def test_code_zero_routes_to_error_with_return_message(make_dispatcher):
    no_response = TransportResponse(url="", status_code=0, return_message="Couldn't connect to server")
    dispatcher = make_dispatcher({URL: no_response})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome.cause, NoResponseError)
    assert outcome.cause.return_message == "Couldn't connect to server"
    assert outcome.cause.url == URL
    on_error.assert_called_once_with(outcome.cause)
    on_blank.assert_not_called()


@pytest.mark.asyncio
async def test_transport_error_field_routes_to_error(make_dispatcher):
    failed = TransportResponse(url="", error="Exceeded maximum allowed redirects.")
    dispatcher = make_dispatcher({URL: failed})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome.cause, TransportError)
    assert_exactly_one(on_blank, on_body, on_error)


@pytest.mark.asyncio
async def test_transport_exception_becomes_transport_error(make_dispatcher):
    dispatcher = make_dispatcher({URL: OSError("boom")})
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome.cause, TransportError)
    assert "boom" in str(outcome.cause)
    on_error.assert_called_once()


@pytest.mark.asyncio
async def test_error_without_on_error_is_only_logged(make_dispatcher, mock_logger):
    dispatcher = make_dispatcher({URL: ok("", status_code=500)})
    on_blank, on_body, _ = callbacks()

    await dispatcher.fetch_async(URL, on_blank, on_body)

    on_blank.assert_not_called()
    on_body.assert_not_called()
    message, cause = mock_logger.debug.call_args.args
    assert "Error during fetching data" in message
    assert isinstance(cause, HttpStatusError)


@pytest.mark.asyncio
async def test_default_callbacks_are_no_ops(make_dispatcher):
    dispatcher = make_dispatcher({URL: ok(""), "https://ok.example/b": ok("x")})

    assert isinstance(await dispatcher.fetch_async(URL), Blank)
    assert isinstance(await dispatcher.fetch_async("https://ok.example/b"), Body)


# ---------------- Point d'extension callback_before_success ----------------

class UpperDispatcher(FetchDispatcher):
    def callback_before_success(self, content):
        return content.strip().upper() if content else content


@pytest.mark.asyncio
async def test_callback_before_success_runs_before_classification(mock_logger):
    transport = FakeTransport({URL: ok(" hello "), "https://ok.example/b": ok("  ")})
    dispatcher = UpperDispatcher(transport=transport, logger=mock_logger)
    on_blank, on_body, _ = callbacks()

    await dispatcher.fetch_async(URL, on_blank, on_body)
    await dispatcher.fetch_async("https://ok.example/b", on_blank, on_body)

    on_body.assert_called_once_with("HELLO")
    on_blank.assert_called_once_with("")


@pytest.mark.asyncio
async def test_transform_is_not_applied_on_error(mock_logger):
    dispatcher = UpperDispatcher(transport=FakeTransport({URL: ok("x", 404)}), logger=mock_logger)
    dispatcher.callback_before_success = Mock()

    await dispatcher.fetch_async(URL)

    dispatcher.callback_before_success.assert_not_called()


# ---------------- fetch() fire-and-forget ----------------

@pytest.mark.asyncio
async def test_fetch_returns_before_callbacks_run(make_dispatcher):
    dispatcher = make_dispatcher({URL: ok("hello")})
    on_blank, on_body, on_error = callbacks()

    task = dispatcher.fetch(URL, on_blank, on_body, on_error)

    on_body.assert_not_called()
    outcome = await task
    assert isinstance(outcome, Body)
    on_body.assert_called_once_with("hello")


@pytest.mark.asyncio
async def test_fetch_callback_exception_is_logged_not_rerouted(make_dispatcher, mock_logger):
    dispatcher = make_dispatcher({URL: ok("hello")})
    on_error = Mock()

    task = dispatcher.fetch(URL, on_body=Mock(side_effect=ValueError("bad parse")), on_error=on_error)
    with pytest.raises(ValueError):
        await task
    await asyncio.sleep(0)

    on_error.assert_not_called()
    mock_logger.error.assert_called_once()
    assert not dispatcher._pending


def test_fetch_requires_running_loop(make_dispatcher):
    with pytest.raises(RuntimeError):
        make_dispatcher().fetch(URL)


@pytest.mark.asyncio
async def test_aclose_closes_transport(make_dispatcher):
    dispatcher = make_dispatcher()
    await dispatcher.aclose()
    assert dispatcher.transport.closed is True


# ---------------- Décodage JSON dans callback_before_success ----------------

class JsonDispatcher(FetchDispatcher):
    def callback_before_success(self, content):
        return json.loads(content) if content else content


@pytest.mark.asyncio
async def test_decoded_body_is_dispatched_as_is(mock_logger):
    dispatcher = JsonDispatcher(transport=FakeTransport({URL: ok('{"n": 1}')}), logger=mock_logger)
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome, Body)
    on_body.assert_called_once_with({"n": 1})
    on_blank.assert_not_called()
    on_error.assert_not_called()


@pytest.mark.asyncio
async def test_decoded_empty_container_is_blank(mock_logger):
    dispatcher = JsonDispatcher(transport=FakeTransport({URL: ok("[]")}), logger=mock_logger)
    on_blank, on_body, on_error = callbacks()

    await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    on_blank.assert_called_once_with([])
    assert_exactly_one(on_blank, on_body, on_error)


@pytest.mark.asyncio
async def test_failing_transform_routes_to_error(mock_logger):
    dispatcher = JsonDispatcher(transport=FakeTransport({URL: ok("<html>")}), logger=mock_logger)
    on_blank, on_body, on_error = callbacks()

    outcome = await dispatcher.fetch_async(URL, on_blank, on_body, on_error)

    assert isinstance(outcome, Error)
    assert isinstance(outcome.cause, TransportError)
    assert "JSONDecodeError" in str(outcome.cause)
    assert outcome.cause.url == URL
    on_error.assert_called_once_with(outcome.cause)
    assert_exactly_one(on_blank, on_body, on_error)
