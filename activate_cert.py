import logging

from cert_errors import ValidationError
from cert_ids import PRESET_CERT_ID
from form_fields import (
    CERT_SELECT,
    CSRF_TOKEN_FIELD,
    HTTPS_IPP,
    HTTPS_WEB,
    discover_http_settings_fields,
    extract_csrf_token,
)
from printer_session import HTTP_SETTINGS_PATH

logger = logging.getLogger("printer_cert.activate")

HTTP_SETTINGS_PAGE_ID = "326"

# 4 == do NOT activate other secure protocols, 5 == DO activate them
HTTP_PAGE_MODE_ACTIVATE_ALL = "5"


def build_activate_form(csrf_token, fields, cert_id):
    form = {
        "pageid": HTTP_SETTINGS_PAGE_ID,
        CSRF_TOKEN_FIELD: csrf_token,
        fields[CERT_SELECT]: cert_id,
    }
    # enable HTTPS for the web UI and IPP if the page has the checkboxes;
    # other settings on the page are left as they are
    for role in (HTTPS_WEB, HTTPS_IPP):
        if role in fields:
            form[fields[role]] = "1"
    return form


def activate_cert(printer, cert_id):
    # works for ids missing from the dropdown (certs without a Common Name).
    # returns once the restart is requested, without waiting for it
    if not cert_id or cert_id == PRESET_CERT_ID:
        raise ValidationError(f"cant activate cert (invalid id {cert_id!r})", stage="activate")

    logger.info(f"Activating certificate {cert_id}...")
    body = printer.get_page(HTTP_SETTINGS_PATH, stage="activate: get settings")
    csrf_token = extract_csrf_token(body, stage="activate: get settings")
    fields = discover_http_settings_fields(body)

    body = printer.post_form(
        HTTP_SETTINGS_PATH,
        build_activate_form(csrf_token, fields, cert_id),
        stage="activate: set certificate",
    )
    csrf_token = extract_csrf_token(body, stage="activate: set certificate")

    logger.info("Confirming activation (printer will restart)...")
    printer.post_form(
        HTTP_SETTINGS_PATH,
        {
            "pageid": HTTP_SETTINGS_PAGE_ID,
            CSRF_TOKEN_FIELD: csrf_token,
            "http_page_mode": HTTP_PAGE_MODE_ACTIVATE_ALL,
        },
        stage="activate: confirm",
        discard=True,
    )
    logger.info(f"Certificate {cert_id} activated.")
