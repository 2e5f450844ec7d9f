from __future__ import annotations

import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django.views.generic import View

from . import services
from .exceptions import EmptyCatalog, EmptyIndex, InvalidKind, UnknownRoute
from .forms import CoordinateForm, ReportForm

logger = logging.getLogger(__name__)


class InvalidPayload(Exception):
    def __init__(self, message, fields=None):
        super().__init__(message)
        self.fields = fields or {}


def _load_json(request) -> dict:
    try:
        data = json.loads(request.body)
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError both land here.
        raise InvalidPayload("Invalid JSON")
    if not isinstance(data, dict):
        raise InvalidPayload("Expected a JSON object")
    return data


def _coordinate(data: dict, key: str):
    value = data.get(key)
    form = CoordinateForm(value if isinstance(value, dict) else None)
    if not form.is_valid():
        raise InvalidPayload(f"Invalid {key} location", {key: form.errors.get_json_data()})
    return form.to_coordinate()


def _bad_request(error: InvalidPayload) -> JsonResponse:
    body = {"error": str(error)}
    if error.fields:
        body["fields"] = error.fields
    return JsonResponse(body, status=400)


def _unavailable(error: Exception) -> JsonResponse:
    logger.warning("Transit data unavailable: %s", error)
    return JsonResponse({"error": str(error)}, status=503)


@method_decorator(csrf_exempt, name="dispatch")
class RecommendRouteView(View):
    def post(self, request, *args, **kwargs):
        try:
            data = _load_json(request)
            start = _coordinate(data, "start")
            end = _coordinate(data, "end")
        except InvalidPayload as error:
            return _bad_request(error)

        logger.info("Recommending route from %s to %s", start, end)
        try:
            return JsonResponse(services.recommend_route(start, end))
        except (EmptyIndex, EmptyCatalog) as error:
            return _unavailable(error)


class StopListView(View):
    def get(self, request, *args, **kwargs):
        return JsonResponse(services.list_stops(), safe=False)


class RouteListView(View):
    def get(self, request, *args, **kwargs):
        return JsonResponse(services.list_routes(), safe=False)


class RouteDetailView(View):
    def get(self, request, *args, **kwargs):
        try:
            return JsonResponse(services.get_route(self.kwargs["route_id"]))
        except UnknownRoute as error:
            return JsonResponse({"error": str(error)}, status=404)


class BusLocationsView(View):
    def get(self, request, *args, **kwargs):
        try:
            return JsonResponse(services.poll_all_locations())
        except EmptyIndex as error:
            return _unavailable(error)


@method_decorator(csrf_exempt, name="dispatch")
class ReportView(View):
    def get(self, request, *args, **kwargs):
        return JsonResponse(services.recent_reports(), safe=False)

    def post(self, request, *args, **kwargs):
        try:
            data = _load_json(request)
            form = ReportForm(data)
            if not form.is_valid():
                raise InvalidPayload("Invalid report", form.errors.get_json_data())
            position = _coordinate(data, "location")
        except InvalidPayload as error:
            return _bad_request(error)

        try:
            report = services.submit_report(
                form.cleaned_data["type"],
                position,
                form.cleaned_data["description"],
            )
        except InvalidKind as error:
            logger.warning("Rejected report: %s", error)
            return JsonResponse({"error": str(error)}, status=400)
        return JsonResponse(report, status=201)
