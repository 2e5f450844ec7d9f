from django import forms

from .geo import Coordinate


class CoordinateForm(forms.Form):
    lat = forms.FloatField(min_value=-90.0, max_value=90.0)
    lon = forms.FloatField(min_value=-180.0, max_value=180.0)

    def to_coordinate(self) -> Coordinate:
        return Coordinate(self.cleaned_data["lat"], self.cleaned_data["lon"])


class ReportForm(forms.Form):
    # Free text so unknown types reach the report log and fail as InvalidKind.
    type = forms.CharField(max_length=20)
    description = forms.CharField(max_length=1000, required=False)
