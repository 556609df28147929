# spectrum_core/models/masters.py

from django.db import models

from .core import TimeStampedModel


class Customer(TimeStampedModel):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="customers",
    )
    code = models.CharField(max_length=32)
    name = models.CharField(max_length=255)
    company = models.CharField(max_length=255, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    address = models.TextField(blank=True)
    contact_person = models.CharField(max_length=255, blank=True)
    trn = models.CharField("tax registration number", max_length=64, blank=True)
    payment_term = models.CharField(max_length=64, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    zoho_contact_id = models.CharField(max_length=64, blank=True, db_index=True)

    class Meta:
        ordering = ["name"]
        unique_together = ("laboratory", "code")

    @property
    def display_name(self) -> str:
        return self.company or self.name

    def __str__(self):
        return f"{self.code} - {self.name}"


class ContactPerson(TimeStampedModel):
    customer = models.ForeignKey(
        Customer,
        on_delete=models.CASCADE,
        related_name="contact_persons",
    )
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=50, blank=True)
    designation = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class SampleType(TimeStampedModel):
    """
    A product family (Diesel, Crude Oil, ...) and its template test list.

    default_tests is a list of
      {"parameter", "method", "unit", "specMin", "specMax", "tat"}
    dicts; spec bounds are kept as strings exactly as entered.
    """

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        INACTIVE = "inactive", "Inactive"

    laboratory = models.ForeignKey(
        "spectrum_core.Laboratory",
        on_delete=models.PROTECT,
        related_name="sample_types",
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    specification_standard = models.CharField(max_length=255, blank=True)
    default_tests = models.JSONField(default=list, blank=True)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)

    class Meta:
        ordering = ["name"]
        unique_together = ("laboratory", "name")

    def __str__(self):
        return self.name
