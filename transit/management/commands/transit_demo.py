import json

from django.core.management.base import BaseCommand, CommandError

from transit import services
from transit.exceptions import TransitError
from transit.geo import Coordinate

KIGALI_CITY_TOWER = Coordinate(-1.9534, 30.0616)
KIGALI_AIRPORT = Coordinate(-1.9686, 30.1344)


class Command(BaseCommand):
    help = "Run a sample recommendation, bus location poll and report submission."

    def handle(self, *args, **options):
        try:
            recommendation = services.recommend_route(KIGALI_CITY_TOWER, KIGALI_AIRPORT)
            locations = services.poll_all_locations()
            services.submit_report(
                "TRAFFIC",
                KIGALI_CITY_TOWER,
                "Heavy traffic due to road construction",
            )
        except TransitError as error:
            raise CommandError(str(error))

        self._section("Route Recommendation:", recommendation)
        self._section("Simulated Bus Locations:", locations)
        self._section("Recent Reports:", services.recent_reports())

    def _section(self, title, payload):
        self.stdout.write(title)
        self.stdout.write(json.dumps(payload, indent=2))
        self.stdout.write("")
