import logging
import re

from bs4 import BeautifulSoup, UnicodeDammit
from playwright.sync_api import Error as PlaywrightError

from cert_errors import AuthenticationError, TransportError
from cert_ids import parse_cert_ids
from form_fields import (
    CSRF_TOKEN_FIELD,
    PASSWORD,
    discover_login_fields,
    extract_csrf_token,
    has_csrf_token,
    is_password_input,
    selected_option_value,
)
from settle import Polling

logger = logging.getLogger("printer_cert.printer")

# --- Admin pages ---
LOGIN_PATH = "/general/status.html"
CERT_LIST_PATH = "/net/security/certificate/certificate.html"
HTTP_SETTINGS_PATH = "/net/net/certificate/http.html"
CERT_DELETE_PATH = "/net/security/certificate/delete.html"
CERT_IMPORT_PATH = "/net/security/certificate/import.html"

DEFAULT_TIMEOUT = 30


class Printer:
    # request is a Playwright APIRequestContext; cookies (and so the login) live in it
    def __init__(self, request, base_url=None):
        self.request = request
        self.base_url = base_url

    @classmethod
    def connect(cls, playwright, base_url, ignore_https_errors=False, timeout=DEFAULT_TIMEOUT):
        request = playwright.request.new_context(
            base_url=base_url,
            ignore_https_errors=ignore_https_errors,
            timeout=timeout * 1000,
        )
        return cls(request, base_url=base_url)

    def close(self):
        self.request.dispose()

    def _send(self, method, path, stage, **kwargs):
        logger.debug(f"{method.upper()} {path} ({stage})")
        try:
            response = getattr(self.request, method)(path, **kwargs)
        except PlaywrightError as e:
            raise TransportError(f"{method.upper()} {path} failed ({e})", stage=stage) from e
        if response.status != 200:
            response.dispose()
            raise TransportError(
                f"{method.upper()} {path} failed (status code {response.status})",
                stage=stage,
                status=response.status,
            )
        return response

    def _read(self, response, stage=None):
        try:
            content = response.body()
        except PlaywrightError as e:
            raise TransportError(f"failed to read response body ({e})", stage=stage) from e
        finally:
            response.dispose()
        return decode_body(content, response.headers.get("content-type", ""), stage=stage)

    def get_page(self, path, params=None, stage=None):
        stage = stage or f"get {path}"
        return self._read(self._send("get", path, stage, params=params), stage)

    def post_form(self, path, form, stage=None, discard=False):
        stage = stage or f"post {path}"
        response = self._send("post", path, stage, form=form)
        if discard:
            response.dispose()
            return None
        return self._read(response, stage)

    def post_multipart(self, path, multipart, stage=None, discard=False):
        stage = stage or f"post {path}"
        response = self._send("post", path, stage, multipart=multipart)
        if discard:
            response.dispose()
            return None
        return self._read(response, stage)

    def get_cert_ids(self):
        body = self.get_page(CERT_LIST_PATH, stage="list certificates")
        ids = parse_cert_ids(body)
        logger.debug(f"Printer reports certificate ids {ids}")
        return ids

    def get_active_cert_id(self):
        body = self.get_page(HTTP_SETTINGS_PATH, stage="get active certificate")
        return selected_option_value(body, stage="get active certificate")

    def login(self, password):
        stage = "login"
        logger.info("Logging in...")
        body = self.get_page(LOGIN_PATH, stage=stage)
        fields = discover_login_fields(body)

        form = {fields[PASSWORD]: password, "loginurl": LOGIN_PATH}
        if has_csrf_token(body):
            form[CSRF_TOKEN_FIELD] = extract_csrf_token(body, stage=stage)

        response = self._send("post", LOGIN_PATH, stage, form=form)
        final_url = response.url
        body = self._read(response, stage)
        if "passerror" in final_url or _shows_login_form(body):
            raise AuthenticationError("login failed: incorrect password", stage=stage)
        logger.info("Logged in to printer admin interface")

    def is_reachable(self):
        try:
            self.get_page(LOGIN_PATH, stage="reachability check")
        except TransportError as e:
            logger.debug(f"Printer not reachable yet: {e}")
            return False
        return True

    def wait_until_reachable(self, timeout=180, interval=5, policy=None):
        policy = policy or Polling(interval=interval, timeout=timeout)
        reachable = policy.wait(self.is_reachable, done=bool)
        if not reachable:
            raise TransportError(f"printer did not come back within {timeout}s", stage="wait for restart")


def _shows_login_form(body):
    return BeautifulSoup(body, "html.parser").find(is_password_input) is not None


def decode_body(content, content_type="", stage=None):
    # admin pages aren't always utf-8; trust the declared charset, then let
    # UnicodeDammit sniff <meta charset> and fall back from there
    match = re.search(r"charset=[\"']?([\w.:-]+)", content_type, re.IGNORECASE)
    encodings = [match.group(1)] if match else []
    declared = encodings[0] if encodings else "utf-8"
    try:
        return content.decode(declared)
    except (LookupError, UnicodeDecodeError) as e:
        logger.debug(f"Response body is not {declared} ({e}), sniffing encoding")
    dammit = UnicodeDammit(content, encodings, is_html=True)
    if dammit.unicode_markup is None:
        raise TransportError("failed to decode response body", stage=stage)
    logger.debug(f"Decoded response body as {dammit.original_encoding}")
    return dammit.unicode_markup
