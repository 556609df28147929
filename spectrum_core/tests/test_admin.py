# spectrum_core/tests/test_admin.py

import pytest
from django.contrib.admin.sites import AdminSite
from django.test import RequestFactory

from spectrum_core import admin as spectrum_admin
from spectrum_core.models import Laboratory, Sample


@pytest.fixture
def admin_request(admin_user):
    request = RequestFactory().get("/admin/")
    request.user = admin_user
    return request


@pytest.mark.django_db
def test_numbered_rows_are_not_added_through_admin(admin_request):
    ma = spectrum_admin.SampleAdmin(Sample, AdminSite())
    assert ma.has_add_permission(admin_request) is False

    readonly = ma.get_readonly_fields(admin_request)
    assert readonly[0] == "laboratory"
    assert "sample_number" in readonly
    assert "status" in readonly


@pytest.mark.django_db
def test_laboratory_zoho_status_column(laboratory):
    ma = spectrum_admin.LaboratoryAdmin(Laboratory, AdminSite())
    assert "not configured" in ma.zoho_status(laboratory)

    laboratory.zoho_client_id = "id"
    laboratory.zoho_client_secret = "secret"
    laboratory.zoho_refresh_token = "refresh"
    laboratory.zoho_org_id = "1"
    laboratory.zoho_api_domain = "https://www.zohoapis.com"
    assert "CONFIGURED" in ma.zoho_status(laboratory)


@pytest.mark.django_db
def test_sample_change_page_renders(admin_client, sample_factory):
    sample = sample_factory()
    resp = admin_client.get(f"/admin/spectrum_core/sample/{sample.id}/change/")
    assert resp.status_code == 200
    assert sample.sample_number in resp.content.decode()

    assert admin_client.get("/admin/spectrum_core/sample/add/").status_code == 403
