# Fields are found by element shape (tag, type, following text), not by the
# firmware-generated names. Repeated matches get roles in document order: first
# HTTPS checkbox is the web UI one, second is IPP; first empty hidden field is
# hidden_1, second hidden_2. If the firmware reorders them, the mapping follows.

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable, Tuple

from bs4 import BeautifulSoup, NavigableString

from cert_errors import CSRFTokenError, DiscoveryError

logger = logging.getLogger("printer_cert.form_fields")

CSRF_TOKEN_FIELD = "CSRFToken"

# Roles
CERT_SELECT = "cert_select"
HTTPS_WEB = "https_web"
HTTPS_IPP = "https_ipp"
HIDDEN_1 = "hidden_1"
HIDDEN_2 = "hidden_2"
FILE = "file"
PASSWORD = "password"

# Hidden fields the workflows already submit by name.
KNOWN_HIDDEN_FIELDS = frozenset({
    "CSRFToken",
    "CSRFToken1",
    "pageid",
    "hidden_certificate_process_control",
    "hidden_certificate_idx",
    "hidden_cert_import_password",
})


class FormFieldSet(Mapping):
    # read-only role -> field name, valid for one fetch of one page

    def __init__(self, page, fields):
        self.page = page
        self._fields = dict(fields)

    def __getitem__(self, role):
        return self._fields[role]

    def __iter__(self):
        return iter(self._fields)

    def __len__(self):
        return len(self._fields)

    def __repr__(self):
        return f"FormFieldSet({self.page!r}, {self._fields!r})"


def field_name(tag):
    return tag.get("name") or tag.get("id")


def _input_type(tag):
    return (tag.get("type") or "").lower()


def is_companion_hidden(tag):
    return (
        tag.name == "input"
        and _input_type(tag) == "hidden"
        and tag.get("value") == ""
        and field_name(tag) not in KNOWN_HIDDEN_FIELDS
    )


def is_select(tag):
    return tag.name == "select"


def is_https_checkbox(tag):
    if tag.name != "input" or _input_type(tag) != "checkbox" or tag.get("value") != "1":
        return False
    label = tag.next_sibling
    return isinstance(label, NavigableString) and "HTTPS" in label


def is_file_input(tag):
    return tag.name == "input" and _input_type(tag) == "file"


def is_password_input(tag):
    return tag.name == "input" and _input_type(tag) == "password"


@dataclass(frozen=True)
class FieldRule:
    # matches are handed out to roles in document order
    roles: Tuple[str, ...]
    match: Callable
    required: bool = False


class PageShape:
    def __init__(self, name, rules):
        self.name = name
        self.rules = tuple(rules)

    def discover(self, body):
        soup = BeautifulSoup(body, "html.parser")
        fields = {}
        for rule in self.rules:
            names = [field_name(tag) for tag in soup.find_all(rule.match) if field_name(tag)]
            for role, name in zip(rule.roles, names):
                fields[role] = name
            if rule.required:
                missing = [role for role in rule.roles if role not in fields]
                if missing:
                    raise DiscoveryError(
                        f"failed to find {', '.join(missing)} field name", stage=self.name
                    )
        field_set = FormFieldSet(self.name, fields)
        logger.debug(f"{self.name}: discovered fields {dict(field_set)}")
        return field_set


COMPANION_RULE = FieldRule((HIDDEN_1, HIDDEN_2), is_companion_hidden)

HTTP_SETTINGS_PAGE = PageShape("http settings page", [
    FieldRule((CERT_SELECT,), is_select, required=True),
    FieldRule((HTTPS_WEB, HTTPS_IPP), is_https_checkbox),
])

DELETE_PAGE = PageShape("delete page", [COMPANION_RULE])

IMPORT_PAGE = PageShape("import page", [
    COMPANION_RULE,
    FieldRule((FILE,), is_file_input, required=True),
    FieldRule((PASSWORD,), is_password_input, required=True),
])

LOGIN_PAGE = PageShape("login page", [
    FieldRule((PASSWORD,), is_password_input, required=True),
])


def discover_http_settings_fields(body):
    return HTTP_SETTINGS_PAGE.discover(body)


def discover_delete_fields(body):
    return DELETE_PAGE.discover(body)


def discover_import_fields(body):
    return IMPORT_PAGE.discover(body)


def discover_login_fields(body):
    return LOGIN_PAGE.discover(body)


def companion_values(fields):
    return {fields[role]: "" for role in (HIDDEN_1, HIDDEN_2) if role in fields}


def _find_csrf_input(soup):
    return soup.find("input", attrs={"name": CSRF_TOKEN_FIELD}) or soup.find("input", id=CSRF_TOKEN_FIELD)


def extract_csrf_token(body, stage=None):
    tag = _find_csrf_input(BeautifulSoup(body, "html.parser"))
    if tag is None or not tag.get("value"):
        raise CSRFTokenError("failed to find CSRFToken", stage=stage)
    return tag["value"]


def has_csrf_token(body):
    return _find_csrf_input(BeautifulSoup(body, "html.parser")) is not None


def selected_option_value(body, stage=None):
    fields = discover_http_settings_fields(body)
    soup = BeautifulSoup(body, "html.parser")
    select = soup.find("select", attrs={"name": fields[CERT_SELECT]}) or soup.find(
        "select", id=fields[CERT_SELECT]
    )
    option = select.find("option", selected=True) if select is not None else None
    if option is None or option.get("value") is None:
        raise DiscoveryError("failed to find current cert id", stage=stage)
    return option["value"]
