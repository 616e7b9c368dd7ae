import argparse
import logging
import os
import socket
import ssl
import sys
import time
from datetime import datetime, timezone
from urllib.parse import urlparse

from cryptography import x509
from playwright.sync_api import sync_playwright

from activate_cert import activate_cert
from cert_errors import DiscoveryError, PrinterError, VerificationError
from cert_ids import PRESET_CERT_ID
from delete_cert import delete_cert
from printer_session import Printer
from settle import DEFAULT_SETTLE_SECONDS, FixedDelay, Polling
from upload_cert import upload_cert

# --- Configuration ---
PRINTER_URL = os.environ.get("PRINTER_URL")
PIN = os.environ.get("PRINTER_PIN")
RENEWAL_THRESHOLD_DAYS = int(os.environ.get("RENEWAL_THRESHOLD_DAYS", 30))
SETTLE_SECONDS = int(os.environ.get("SETTLE_SECONDS", DEFAULT_SETTLE_SECONDS))
PRINTER_TIMEOUT = int(os.environ.get("PRINTER_TIMEOUT", 30))
CERT_PATH = os.environ.get("CERT_PATH", "issued_0000_cert.pem")
KEY_PATH = os.environ.get("KEY_PATH", "privkey.pem")
RESTART_GRACE_SECONDS = 20
RESTART_TIMEOUT = 180

logger = logging.getLogger("printer_cert")


def setup_logger(verbose=False):
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


# --- Certificate Expiration Check on Printer ---
def get_printer_cert_expiration(host, port=443):
    # None when the printer can't be reached or serves garbage
    context = ssl.create_default_context()
    # read whatever is served, even an expired or self-signed cert
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    try:
        with socket.create_connection((host, port), timeout=5) as sock:
            with context.wrap_socket(sock, server_hostname=host) as conn:
                der_cert = conn.getpeercert(binary_form=True)
        cert = x509.load_der_x509_certificate(der_cert)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to retrieve printer certificate: {e}")
        return None
    return cert.not_valid_after_utc


def renewal_needed(expiration, threshold_days=RENEWAL_THRESHOLD_DAYS, now=None):
    if expiration is None:
        return True
    now = now or datetime.now(timezone.utc)
    days_left = (expiration - now).days
    logger.info(f"Current printer certificate expires in {days_left} day(s).")
    return days_left < threshold_days


# --- Renewal ---
def renew(printer, key_pem, cert_pem, password=None, delete_old=True, settle=None,
          restart_timeout=RESTART_TIMEOUT, sleep=time.sleep):
    # upload + activate the new cert, then delete the one it replaced
    old_id = None
    if delete_old:
        try:
            old_id = printer.get_active_cert_id()
            logger.info(f"Currently active certificate: {old_id}")
        except DiscoveryError as e:
            logger.warning(f"Could not determine the active certificate ({e}); it will be kept.")

    new_id = upload_cert(printer, key_pem, cert_pem, settle=settle)
    if not new_id:
        raise VerificationError("upload did not produce a detectable new certificate", stage="renew")

    activate_cert(printer, new_id)

    if old_id and old_id not in (PRESET_CERT_ID, new_id):
        logger.info("Waiting for printer to restart...")
        sleep(RESTART_GRACE_SECONDS)
        printer.wait_until_reachable(timeout=restart_timeout)
        if password:
            printer.login(password)
        delete_cert(printer, old_id, settle=settle)

    return new_id


def read_pem(path):
    with open(path, "rb") as f:
        return f.read()


# --- Commands ---
def cmd_list(printer, args, settle):
    for cert_id in printer.get_cert_ids():
        print(cert_id)


def cmd_active(printer, args, settle):
    print(printer.get_active_cert_id())


def cmd_upload(printer, args, settle):
    new_id = upload_cert(printer, read_pem(args.key), read_pem(args.cert), settle=settle)
    print(new_id)


def cmd_activate(printer, args, settle):
    activate_cert(printer, args.id)


def cmd_delete(printer, args, settle):
    delete_cert(printer, args.id, settle=settle)


def cmd_renew(printer, args, settle):
    new_id = renew(
        printer,
        read_pem(args.key),
        read_pem(args.cert),
        password=PIN,
        delete_old=not args.keep_old,
        settle=settle,
    )
    logger.info(f"Renewal complete. Active certificate is now {new_id}.")


def build_parser():
    parser = argparse.ArgumentParser(prog="printer-cert", description="Manage printer HTTPS certificates.")
    parser.add_argument("--verbose", "--debug", action="store_true", dest="verbose")
    parser.add_argument("--insecure", "--ignore-https-errors", action="store_true", dest="insecure")
    parser.add_argument("--poll", action="store_true", help="poll the certificate list instead of a fixed wait")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="list certificate ids").set_defaults(func=cmd_list)
    sub.add_parser("active", help="show the active certificate id").set_defaults(func=cmd_active)

    upload = sub.add_parser("upload", help="install a PEM key and certificate")
    upload.add_argument("key")
    upload.add_argument("cert")
    upload.set_defaults(func=cmd_upload)

    activate = sub.add_parser("activate", help="make a certificate the active one")
    activate.add_argument("id")
    activate.set_defaults(func=cmd_activate)

    delete = sub.add_parser("delete", help="delete a certificate")
    delete.add_argument("id")
    delete.set_defaults(func=cmd_delete)

    renew_p = sub.add_parser("renew", help="replace the active certificate")
    renew_p.add_argument("--key", default=KEY_PATH)
    renew_p.add_argument("--cert", default=CERT_PATH)
    renew_p.add_argument("--force-new", action="store_true")
    renew_p.add_argument("--keep-old", action="store_true", help="don't delete the replaced certificate")
    renew_p.set_defaults(func=cmd_renew)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    setup_logger(args.verbose)

    if not PRINTER_URL:
        logger.error("Missing required env var PRINTER_URL")
        return 1

    allow_invalid_cert = args.insecure
    if args.command in ("upload", "renew"):
        if not os.path.exists(args.key) or not os.path.exists(args.cert):
            logger.error("Certificate or key file is missing.")
            return 1

    if args.command == "renew" and not args.force_new:
        parsed_url = urlparse(PRINTER_URL)
        expiration = get_printer_cert_expiration(parsed_url.hostname, parsed_url.port or 443)
        if not renewal_needed(expiration):
            logger.info("Certificate is still valid. No renewal needed.")
            return 0
        if expiration is None:
            logger.warning("Certificate check failed (likely invalid/self-signed). Forcing insecure mode.")
            allow_invalid_cert = True

    settle = Polling(timeout=SETTLE_SECONDS * 3) if args.poll else FixedDelay(SETTLE_SECONDS)

    with sync_playwright() as p:
        printer = Printer.connect(p, PRINTER_URL, ignore_https_errors=allow_invalid_cert, timeout=PRINTER_TIMEOUT)
        try:
            if PIN:
                printer.login(PIN)
            args.func(printer, args, settle)
        except PrinterError as e:
            logger.error(f"{type(e).__name__}: {e}")
            return 1
        except OSError as e:
            logger.error(f"Failed to read certificate files: {e}")
            return 1
        finally:
            printer.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
