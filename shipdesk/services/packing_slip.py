"""
Packing Slip Rendering

Jinja2 HTML packing slip printed alongside the shipping labels.
"""
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape

from shipdesk.schemas.fulfillment import Destination, PackageInfo, QuoteSchema
from shipdesk.services.label_purchaser import LabelResult

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
PACKING_SLIP_TEMPLATE = "packing_slip.html"
DEFAULT_DESCRIPTION = "Clothing"


class PackingSlipRenderer:
    """Render packing slips from the bundled template."""

    def __init__(self, business_name: str, origin: Dict[str, Any], template_dir: Path = TEMPLATE_DIR):
        self.business_name = business_name
        self.origin = origin
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def render(
        self,
        destination: Destination,
        packages: Sequence[PackageInfo],
        labels: Sequence[LabelResult],
        selected_rate: Optional[QuoteSchema] = None,
        slip_date: Optional[date] = None,
    ) -> str:
        template = self.env.get_template(PACKING_SLIP_TEMPLATE)
        slip_date = slip_date or date.today()
        return template.render(
            business_name=self.business_name,
            date=f"{slip_date:%B} {slip_date.day}, {slip_date.year}",
            origin=self.origin,
            destination=destination,
            packages=[
                {
                    "number": number,
                    "description": package.description or DEFAULT_DESCRIPTION,
                    "dimensions": f'{package.length:g}" x {package.width:g}" x {package.height:g}"',
                    "weight": f"{package.weight:g} lbs",
                }
                for number, package in enumerate(packages, start=1)
            ],
            labels=list(labels),
            selected_rate=selected_rate,
        )
