"""FHIR R4 client for pulling a patient's record as a single Bundle.

Uses the ``Patient/{id}/$everything`` operation and follows ``next`` links
so the summarizer sees one Bundle regardless of server page size. Any
FHIR R4 server supporting ``$everything`` works (HAPI FHIR, SMART on FHIR
sandboxes with Synthea data, ...).
"""

import logging

import httpx

from triage_timeline.config import FHIR_BASE_URL, FHIR_MAX_PAGES, FHIR_TIMEOUT

logger = logging.getLogger(__name__)

FHIR_HEADERS = {
    "Accept": "application/fhir+json",
}


def _next_link(bundle: dict) -> str | None:
    """URL of the next page of a searchset Bundle, if any."""
    links = bundle.get("link")
    if not isinstance(links, list):
        return None
    for link in links:
        if isinstance(link, dict) and link.get("relation") == "next" and link.get("url"):
            return link["url"]
    return None


def _page_entries(bundle) -> list:
    if not isinstance(bundle, dict) or bundle.get("resourceType") != "Bundle":
        return []
    entries = bundle.get("entry")
    return entries if isinstance(entries, list) else []


async def get_everything(
    client: httpx.AsyncClient,
    base_url: str,
    patient_id: str,
    max_pages: int = FHIR_MAX_PAGES,
) -> dict:
    """Fetch every page of ``Patient/{id}/$everything`` and merge the entries.

    Returns:
        A ``searchset`` Bundle with the entries of all fetched pages, in
        server order.
    """
    url: str | None = f"{base_url.rstrip('/')}/Patient/{patient_id}/$everything"
    entries: list = []
    pages = 0

    while url and pages < max_pages:
        resp = await client.get(url, headers=FHIR_HEADERS)
        resp.raise_for_status()
        page = resp.json()
        entries.extend(_page_entries(page))
        pages += 1
        url = _next_link(page) if isinstance(page, dict) else None

    if url:
        logger.warning(
            "Stopped paging $everything for patient %s after %d pages", patient_id, pages,
        )
    logger.info(
        "Fetched %d entries for patient %s from %s (%d pages)",
        len(entries), patient_id, base_url, pages,
    )
    return {"resourceType": "Bundle", "type": "searchset", "entry": entries}


async def fetch_patient_bundle(
    patient_id: str,
    base_url: str = FHIR_BASE_URL,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Fetch a patient's full record from a FHIR R4 server as one Bundle.

    Args:
        patient_id: FHIR Patient resource ID
        base_url: FHIR server base URL
        transport: Optional httpx transport (tests pass an ``httpx.MockTransport``)

    Raises:
        ValueError: no server base URL is configured.
        httpx.HTTPStatusError: the server answered with an error status.
        httpx.TimeoutException: the server did not answer in time.
    """
    if not base_url:
        raise ValueError("No FHIR server configured")
    async with httpx.AsyncClient(timeout=FHIR_TIMEOUT, transport=transport) as client:
        return await get_everything(client, base_url, patient_id)
