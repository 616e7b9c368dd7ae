import logging

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import NoEncryption, pkcs12

from cert_errors import AmbiguousUploadError, CertificateConversionError
from cert_ids import new_cert_ids
from form_fields import (
    CSRF_TOKEN_FIELD,
    FILE,
    PASSWORD,
    companion_values,
    discover_import_fields,
    extract_csrf_token,
)
from printer_session import CERT_IMPORT_PATH
from settle import FixedDelay

logger = logging.getLogger("printer_cert.upload")

CERT_IMPORT_PAGE_ID = "390"
P12_FILENAME = "certkey.p12"


def _as_bytes(pem):
    return pem.encode() if isinstance(pem, str) else pem


def make_pkcs12(key_pem, cert_pem):
    # first cert in cert_pem is the leaf, anything after it is chain
    try:
        key = serialization.load_pem_private_key(_as_bytes(key_pem), password=None)
        certs = x509.load_pem_x509_certificates(_as_bytes(cert_pem))
    except (ValueError, TypeError) as e:
        raise CertificateConversionError(f"failed to make p12 file ({e})", stage="upload: convert") from e

    return pkcs12.serialize_key_and_certificates(
        name=None,
        key=key,
        cert=certs[0],
        cas=certs[1:] or None,
        encryption_algorithm=NoEncryption(),
    )


def build_import_multipart(csrf_token, fields, p12):
    multipart = {"pageid": CERT_IMPORT_PAGE_ID, CSRF_TOKEN_FIELD: csrf_token}
    multipart.update(companion_values(fields))
    multipart["hidden_certificate_process_control"] = "1"
    multipart[fields[FILE]] = {
        "name": P12_FILENAME,
        "mimeType": "application/x-pkcs12",
        "buffer": p12,
    }
    multipart[fields[PASSWORD]] = ""
    multipart["hidden_cert_import_password"] = ""
    return multipart


def upload_cert(printer, key_pem, cert_pem, settle=None):
    # the printer doesn't report the new id, so diff the id list around the
    # import. returns "" when no new id shows up
    settle = settle or FixedDelay()
    p12 = make_pkcs12(key_pem, cert_pem)

    orig_ids = printer.get_cert_ids()

    logger.info("Uploading certificate...")
    body = printer.get_page(CERT_IMPORT_PATH, stage="upload: get import page")
    csrf_token = extract_csrf_token(body, stage="upload: get import page")
    fields = discover_import_fields(body)

    printer.post_multipart(
        CERT_IMPORT_PATH,
        build_import_multipart(csrf_token, fields, p12),
        stage="upload: post certificate",
        discard=True,
    )

    current_ids = settle.wait(printer.get_cert_ids, done=lambda ids: bool(new_cert_ids(orig_ids, ids)))
    added = new_cert_ids(orig_ids, current_ids)

    # more than one new id means something else installed a cert meanwhile
    if len(added) > 1:
        raise AmbiguousUploadError(
            f"failed to deduce new cert's id (candidates {added})", added, stage="upload: verify"
        )
    if not added:
        logger.warning("Upload accepted but no new certificate id appeared.")
        return ""

    logger.info(f"Certificate uploaded with id {added[0]}.")
    return added[0]
