import logging

from cert_errors import ValidationError, VerificationError
from cert_ids import PRESET_CERT_ID
from form_fields import CSRF_TOKEN_FIELD, companion_values, discover_delete_fields, extract_csrf_token
from printer_session import CERT_DELETE_PATH
from settle import FixedDelay

logger = logging.getLogger("printer_cert.delete")

CERT_DELETE_PAGE_ID = "383"

PROCESS_PROPOSE = "1"
PROCESS_CONFIRM = "2"


def build_delete_form(csrf_token, fields, cert_id, process_control):
    form = {"pageid": CERT_DELETE_PAGE_ID, CSRF_TOKEN_FIELD: csrf_token}
    form.update(companion_values(fields))
    form["hidden_certificate_process_control"] = process_control
    form["hidden_certificate_idx"] = cert_id
    return form


def delete_cert(printer, cert_id, settle=None):
    settle = settle or FixedDelay()

    # "0" is the preset certificate, which can't be deleted
    if not cert_id or cert_id == PRESET_CERT_ID:
        raise ValidationError(f"cant delete cert (invalid id {cert_id!r})", stage="delete")
    if cert_id not in printer.get_cert_ids():
        raise ValidationError(f"cant delete cert (no cert with id {cert_id!r})", stage="delete")

    logger.info(f"Deleting certificate {cert_id}...")
    body = printer.get_page(CERT_DELETE_PATH, params={"idx": cert_id}, stage="delete: get page")
    csrf_token = extract_csrf_token(body, stage="delete: get page")
    fields = discover_delete_fields(body)

    body = printer.post_form(
        CERT_DELETE_PATH,
        build_delete_form(csrf_token, fields, cert_id, PROCESS_PROPOSE),
        stage="delete: propose",
    )

    # the confirmation page carries its own token and field names
    csrf_token = extract_csrf_token(body, stage="delete: propose")
    fields = discover_delete_fields(body)

    printer.post_form(
        CERT_DELETE_PATH,
        build_delete_form(csrf_token, fields, cert_id, PROCESS_CONFIRM),
        stage="delete: confirm",
        discard=True,
    )

    remaining = settle.wait(printer.get_cert_ids, done=lambda ids: cert_id not in ids)
    if cert_id in remaining:
        raise VerificationError(f"failed to delete cert {cert_id} (still exists)", stage="delete: verify")
    logger.info(f"Certificate {cert_id} deleted.")
