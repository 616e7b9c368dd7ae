from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

# id of the printer's built-in preset certificate
PRESET_CERT_ID = "0"


def parse_cert_ids(body):
    soup = BeautifulSoup(body, "html.parser")
    ids = []
    for link in soup.find_all("a", href=True):
        for cert_id in parse_qs(urlparse(link["href"]).query).get("idx", []):
            if cert_id not in ids:
                ids.append(cert_id)
    return ids


def new_cert_ids(before, after):
    baseline = set(before)
    found = []
    for cert_id in after:
        if cert_id not in baseline and cert_id not in found:
            found.append(cert_id)
    return found
