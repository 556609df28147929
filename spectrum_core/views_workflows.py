# spectrum_core/views_workflows.py
from drf_spectacular.utils import extend_schema
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .mixins import require_laboratory
from .models import WorkflowTransition
from .serializers import WorkflowTransitionSerializer
from .workflows import allowed_next_states, is_terminal, normalize_kind, workflow_definition
from .workflows.transition_service import model_for_kind


class WorkflowDefinitionView(APIView):
    """
    Returns full workflow definition for a given kind.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request, kind: str):
        try:
            data = workflow_definition(kind)
        except ValueError as e:
            raise ValidationError(str(e))
        return Response(data)


class WorkflowNextStatesView(APIView):
    """
    Returns allowed next states given current state.

    ?manual=1 leaves out targets only reachable through dedicated actions.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"])
    def get(self, request, kind: str):
        current = request.query_params.get("current")
        if not current:
            raise ValidationError("current query parameter is required.")

        try:
            workflow_definition(kind)
        except ValueError as e:
            raise ValidationError(str(e))

        manual = request.query_params.get("manual") in ("1", "true", "yes")
        next_states = allowed_next_states(kind, current, include_system=not manual)

        return Response(
            {
                "kind": kind,
                "current": current,
                "allowed_next": next_states,
                "terminal": is_terminal(kind, current),
            }
        )


class WorkflowTimelineView(APIView):
    """
    Transition history of one object in the active laboratory.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(tags=["Workflows"], responses=WorkflowTransitionSerializer(many=True))
    def get(self, request, kind: str, object_id: int):
        lab = require_laboratory(request)
        try:
            model = model_for_kind(kind)
        except ValueError as e:
            raise ValidationError(str(e))

        if not model.objects.filter(pk=object_id, laboratory=lab).exists():
            raise NotFound("Object not found in this laboratory.")

        rows = (
            WorkflowTransition.objects.filter(kind=normalize_kind(kind), object_id=object_id)
            .select_related("performed_by")
            .order_by("created_at", "id")
        )
        return Response(WorkflowTransitionSerializer(rows, many=True).data)
