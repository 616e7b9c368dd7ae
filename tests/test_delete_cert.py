import pytest

from cert_errors import TransportError, ValidationError, VerificationError
from conftest import FakeResponse
from delete_cert import delete_cert
from printer_pages import cert_list_page, delete_page
from printer_session import CERT_DELETE_PATH, CERT_LIST_PATH
from settle import Polling


def route_delete_pages(request_context):
    request_context.route("get", CERT_DELETE_PATH, delete_page(token="tok-1", hidden=("Bb0a", "Bb1c")))
    request_context.route(
        "post", CERT_DELETE_PATH, delete_page(token="tok-2", hidden=("Bb0b", "Bb1d")), "<html>done</html>"
    )


def test_delete_proposes_then_confirms(printer, request_context, no_wait, sleeps):
    request_context.route("get", CERT_LIST_PATH, cert_list_page(["1", "2", "3"]), cert_list_page(["1", "3"]))
    route_delete_pages(request_context)

    delete_cert(printer, "2", settle=no_wait)

    get_delete = [kwargs for method, path, kwargs in request_context.calls if path == CERT_DELETE_PATH and method == "get"]
    assert get_delete == [{"params": {"idx": "2"}}]
    assert request_context.posts(CERT_DELETE_PATH) == [
        {"form": {
            "pageid": "383",
            "CSRFToken": "tok-1",
            "Bb0a": "",
            "Bb1c": "",
            "hidden_certificate_process_control": "1",
            "hidden_certificate_idx": "2",
        }},
        {"form": {
            "pageid": "383",
            "CSRFToken": "tok-2",
            "Bb0b": "",
            "Bb1d": "",
            "hidden_certificate_process_control": "2",
            "hidden_certificate_idx": "2",
        }},
    ]
    assert sleeps == [10]


def test_delete_still_listed_is_verification_error(printer, request_context, no_wait):
    request_context.route("get", CERT_LIST_PATH, cert_list_page(["1", "2", "3"]))
    route_delete_pages(request_context)

    with pytest.raises(VerificationError) as excinfo:
        delete_cert(printer, "2", settle=no_wait)
    assert excinfo.value.stage == "delete: verify"


@pytest.mark.parametrize("cert_id", ["", "0"])
def test_delete_rejects_sentinel_without_io(printer, request_context, cert_id):
    with pytest.raises(ValidationError):
        delete_cert(printer, cert_id)
    assert request_context.calls == []


def test_delete_rejects_unknown_id(printer, request_context):
    request_context.route("get", CERT_LIST_PATH, cert_list_page(["1", "3"]))

    with pytest.raises(ValidationError):
        delete_cert(printer, "2")
    assert [path for _, path, _ in request_context.calls] == [CERT_LIST_PATH]


def test_delete_without_companion_fields(printer, request_context, no_wait):
    request_context.route("get", CERT_LIST_PATH, cert_list_page(["4"]), cert_list_page([]))
    request_context.route("get", CERT_DELETE_PATH, delete_page(token="tok-1", hidden=()))
    request_context.route("post", CERT_DELETE_PATH, delete_page(token="tok-2", hidden=()), "")

    delete_cert(printer, "4", settle=no_wait)

    first, second = request_context.posts(CERT_DELETE_PATH)
    assert set(first["form"]) == {"pageid", "CSRFToken", "hidden_certificate_process_control", "hidden_certificate_idx"}
    assert second["form"]["hidden_certificate_process_control"] == "2"


def test_delete_propose_failure_stops_workflow(printer, request_context, no_wait):
    request_context.route("get", CERT_LIST_PATH, cert_list_page(["2"]))
    request_context.route("get", CERT_DELETE_PATH, delete_page())
    request_context.route("post", CERT_DELETE_PATH, FakeResponse("", status=500))

    with pytest.raises(TransportError) as excinfo:
        delete_cert(printer, "2", settle=no_wait)
    assert excinfo.value.stage == "delete: propose"
    assert len(request_context.posts()) == 1


def test_delete_with_polling_settle(printer, request_context):
    request_context.route(
        "get", CERT_LIST_PATH,
        cert_list_page(["1", "2"]), cert_list_page(["1", "2"]), cert_list_page(["1"]),
    )
    route_delete_pages(request_context)
    sleeps = []

    delete_cert(printer, "2", settle=Polling(interval=2, timeout=20, sleep=sleeps.append, clock=lambda: 0))

    assert sleeps == [2, 2]
