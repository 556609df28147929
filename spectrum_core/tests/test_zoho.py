# spectrum_core/tests/test_zoho.py

import json

import httpx
import pytest
from django.core.cache import cache
from rest_framework.exceptions import ValidationError

from spectrum_core.integrations.zoho import (
    ZohoClient,
    ZohoError,
    ZohoNotConfigured,
    accounts_url,
    token_cache_key,
)
from spectrum_core.models import Customer, Invoice
from spectrum_core.services import accounts as accounts_service
from spectrum_core.services import zoho_sync


def _contact(contact_id, name, company="", email="", status="active", persons=None):
    return {
        "contact_id": contact_id,
        "contact_name": name,
        "company_name": company,
        "status": status,
        "payment_terms_label": "Net 30",
        "billing_address": {"address": "Plot 12", "city": "Dubai", "country": "UAE"},
        "contact_persons": persons
        if persons is not None
        else [{"first_name": "Omar", "last_name": "Saleh", "email": email, "phone": "+971 4 000"}],
    }


class FakeZoho:
    """
    Minimal Zoho Books: token endpoint, paged contacts, organizations and
    invoice creation. Records every request it sees.
    """

    def __init__(self, pages=None, expire_first_token=False):
        self.pages = pages or [[]]
        self.requests = []
        self.tokens_issued = 0
        self.expire_first_token = expire_first_token
        self.created_invoices = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/oauth/v2/token":
            self.tokens_issued += 1
            return httpx.Response(200, json={"access_token": f"token-{self.tokens_issued}"})

        auth = request.headers.get("Authorization", "")
        if self.expire_first_token and auth == "Zoho-oauthtoken token-1":
            return httpx.Response(401, json={"code": 57, "message": "expired"})

        if path == "/books/v3/organizations":
            return httpx.Response(200, json={"organizations": [{"organization_id": "777", "name": "Spectrum FZE"}]})

        if path == "/books/v3/contacts":
            page = int(request.url.params.get("page", "1"))
            contacts = self.pages[page - 1]
            return httpx.Response(
                200,
                json={"contacts": contacts, "page_context": {"has_more_page": page < len(self.pages)}},
            )

        if path == "/books/v3/invoices" and request.method == "POST":
            payload = json.loads(request.content)
            self.created_invoices.append(payload)
            return httpx.Response(201, json={"invoice": {"invoice_id": "INV-ZB-1"}})

        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def zoho_lab(laboratory):
    laboratory.zoho_client_id = "client"
    laboratory.zoho_client_secret = "secret"
    laboratory.zoho_refresh_token = "refresh"
    laboratory.zoho_org_id = "777"
    laboratory.zoho_api_domain = "https://www.zohoapis.eu"
    laboratory.save()
    return laboratory


def test_accounts_url_follows_region():
    assert accounts_url("https://www.zohoapis.eu/") == "https://accounts.zoho.eu"
    assert accounts_url("https://books.example") == "https://accounts.zoho.com"


@pytest.mark.django_db
def test_client_requires_credentials(laboratory):
    with pytest.raises(ZohoNotConfigured):
        ZohoClient(laboratory)


@pytest.mark.django_db
def test_token_is_cached_and_scoped(zoho_lab):
    fake = FakeZoho()
    with ZohoClient(zoho_lab, transport=httpx.MockTransport(fake)) as client:
        client.organizations()
        client.organizations()

    assert fake.tokens_issued == 1
    assert cache.get(token_cache_key(zoho_lab)) == "token-1"

    token_request = fake.requests[0]
    assert token_request.url.host == "accounts.zoho.eu"
    assert b"grant_type=refresh_token" in token_request.content

    api_request = fake.requests[1]
    assert api_request.url.params["organization_id"] == "777"


@pytest.mark.django_db
def test_expired_token_is_refreshed_once(zoho_lab):
    fake = FakeZoho(expire_first_token=True)
    with ZohoClient(zoho_lab, transport=httpx.MockTransport(fake)) as client:
        orgs = client.organizations()

    assert orgs[0]["name"] == "Spectrum FZE"
    assert fake.tokens_issued == 2
    assert cache.get(token_cache_key(zoho_lab)) == "token-2"


@pytest.mark.django_db
def test_api_error_raises(zoho_lab):
    def handler(request):
        if request.url.path == "/oauth/v2/token":
            return httpx.Response(200, json={"access_token": "t"})
        return httpx.Response(500, text="boom")

    with ZohoClient(zoho_lab, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ZohoError) as exc:
            client.organizations()
    assert exc.value.status_code == 500


@pytest.mark.django_db
def test_auth_error_is_reported(zoho_lab):
    def handler(request):
        return httpx.Response(200, json={"error": "invalid_code"})

    with ZohoClient(zoho_lab, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ZohoError) as exc:
            client.access_token()
    assert "invalid_code" in str(exc.value)


@pytest.mark.django_db
def test_fetch_all_contacts_pages(zoho_lab):
    fake = FakeZoho(pages=[[_contact("1", "Alpha")], [_contact("2", "Beta")], [_contact("3", "Gamma")]])
    with ZohoClient(zoho_lab, transport=httpx.MockTransport(fake)) as client:
        contacts = client.fetch_all_contacts()

    assert [c["contact_name"] for c in contacts] == ["Alpha", "Beta", "Gamma"]
    pages = [r.url.params["page"] for r in fake.requests if r.url.path == "/books/v3/contacts"]
    assert pages == ["1", "2", "3"]


@pytest.mark.django_db
def test_check_connection(zoho_lab):
    result = zoho_sync.check_connection(zoho_lab, transport=httpx.MockTransport(FakeZoho()))
    assert result == {"success": True, "message": "Connected successfully", "org_name": "Spectrum FZE"}


@pytest.mark.django_db
def test_check_connection_unconfigured(other_laboratory):
    result = zoho_sync.check_connection(other_laboratory)
    assert result["success"] is False


@pytest.mark.django_db
def test_sync_creates_and_updates_customers(zoho_lab, customer):
    fake = FakeZoho(
        pages=[
            [
                # matches the existing customer by company name
                _contact("100", "Gulf Energy", company="Gulf Energy Trading LLC", email="ops@gulf.example"),
                _contact("200", "Desert Refining", email="qa@desert.example"),
            ],
            [_contact("300", "Old Harbour Oils", status="inactive", persons=[])],
        ]
    )

    result = zoho_sync.sync_customers(zoho_lab, transport=httpx.MockTransport(fake))

    assert result["success"] is True
    assert (result["created"], result["updated"], result["total"]) == (2, 1, 3)

    customer.refresh_from_db()
    assert customer.zoho_contact_id == "100"
    assert customer.email == "ops@gulf.example"
    assert customer.payment_term == "Net 30"
    assert customer.address == "Plot 12, Dubai, UAE"
    assert customer.contact_persons.get().name == "Omar Saleh"

    desert = Customer.objects.get(laboratory=zoho_lab, zoho_contact_id="200")
    assert desert.code.startswith("SP-DES-")
    assert desert.contact_person == "Omar Saleh"

    harbour = Customer.objects.get(laboratory=zoho_lab, zoho_contact_id="300")
    assert harbour.status == Customer.Status.INACTIVE

    # a second pull matches everything by Zoho id
    again = zoho_sync.sync_customers(zoho_lab, transport=httpx.MockTransport(fake))
    assert (again["created"], again["updated"]) == (0, 3)
    assert Customer.objects.filter(laboratory=zoho_lab).count() == 3
    assert customer.contact_persons.count() == 1


@pytest.mark.django_db
def test_sync_failure_is_reported_not_raised(zoho_lab):
    def handler(request):
        return httpx.Response(400, text="bad")

    result = zoho_sync.sync_customers(zoho_lab, transport=httpx.MockTransport(handler))
    assert result["success"] is False
    assert result["created"] == 0


@pytest.fixture
def sent_invoice(zoho_lab, customer, user_accounts):
    invoice = accounts_service.create_invoice(
        laboratory=zoho_lab,
        user=user_accounts,
        client=customer,
        items=[{"description": "Diesel full specification", "quantity": 2, "unit_price": "250.00"}],
    )
    return accounts_service.update_status(invoice, user=user_accounts, status="sent")


@pytest.mark.django_db
def test_push_invoice(sent_invoice, customer, user_accounts):
    Customer.objects.filter(pk=customer.pk).update(zoho_contact_id="100")
    invoice = Invoice.objects.get(pk=sent_invoice.pk)
    fake = FakeZoho()

    pushed = zoho_sync.push_invoice(invoice, user=user_accounts, transport=httpx.MockTransport(fake))

    assert pushed.zoho_invoice_id == "INV-ZB-1"
    assert Invoice.objects.get(pk=invoice.pk).zoho_invoice_id == "INV-ZB-1"
    payload = fake.created_invoices[0]
    assert payload["customer_id"] == "100"
    assert payload["reference_number"] == invoice.invoice_number
    assert payload["line_items"][0]["quantity"] == "2.00"
    assert payload["line_items"][0]["rate"] == "250.00"

    with pytest.raises(ValidationError):
        zoho_sync.push_invoice(Invoice.objects.get(pk=invoice.pk), transport=httpx.MockTransport(fake))


@pytest.mark.django_db
def test_stale_retry_does_not_create_a_second_zoho_invoice(sent_invoice, customer, user_accounts):
    Customer.objects.filter(pk=customer.pk).update(zoho_contact_id="100")
    first = Invoice.objects.get(pk=sent_invoice.pk)
    retry = Invoice.objects.get(pk=sent_invoice.pk)
    fake = FakeZoho()

    zoho_sync.push_invoice(first, user=user_accounts, transport=httpx.MockTransport(fake))
    assert retry.zoho_invoice_id == ""

    with pytest.raises(ValidationError) as exc:
        zoho_sync.push_invoice(retry, user=user_accounts, transport=httpx.MockTransport(fake))
    assert "zoho_invoice_id" in exc.value.detail
    assert len(fake.created_invoices) == 1


@pytest.mark.django_db
def test_push_requires_linked_customer(sent_invoice):
    with pytest.raises(ValidationError) as exc:
        zoho_sync.push_invoice(sent_invoice, transport=httpx.MockTransport(FakeZoho()))
    assert "client" in exc.value.detail
