# spectrum_core/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Blocks plain .save() calls that change server-controlled columns.

    WORKFLOW_FIELD (status) only moves through
    spectrum_core.workflows.transition_service.transition_object(), which
    writes with QuerySet.update(). The owning laboratory and the document
    number (NUMBER_FIELD) are fixed once the row exists.

    Escape hatch for data fixes: save(_workflow_bypass=True) or
    instance._workflow_bypass = True.
    """

    WORKFLOW_FIELD = "status"
    NUMBER_FIELD = None
    WORKFLOW_BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    @classmethod
    def guarded_fields(cls):
        fields = [cls.WORKFLOW_FIELD, "laboratory_id", cls.NUMBER_FIELD]
        return [f for f in fields if f]

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.WORKFLOW_BYPASS_KWARG, False)
            or getattr(self, "_workflow_bypass", False)
        )

        if not bypass and self.pk is not None:
            guarded = self.guarded_fields()
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                names = {self._meta.get_field(f).attname for f in update_fields}
                guarded = [f for f in guarded if f in names]

            stored = self.__class__.objects.filter(pk=self.pk).values(*guarded).first() if guarded else None
            if stored:
                changed = [f for f, old in stored.items() if old != getattr(self, f, None)]
                if changed:
                    label = ", ".join(f.removesuffix("_id") for f in changed)
                    raise PermissionDenied(
                        f"{self._meta.verbose_name.capitalize()} {label} cannot be changed by a "
                        "direct save. Use the workflow services."
                    )

        return super().save(*args, **kwargs)
