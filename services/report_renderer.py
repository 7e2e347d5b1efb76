"""
Report rendering service
Renders the fleet health report as a self-contained HTML document with Jinja2
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from jinja2 import Environment, FileSystemLoader

from models.health import HealthRecord, InstanceMaintenanceResult

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
REPORT_TEMPLATE = "health_report.html"


class ReportRenderer:
    """Service for rendering the HTML health report"""

    def __init__(self, template_dir: Optional[str] = None):
        # Initialize Jinja2 environment
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir or DEFAULT_TEMPLATE_DIR)),
            autoescape=True  # Auto-escape HTML for security
        )

    def render(self, records: List[HealthRecord], generated_at: datetime,
               maintenance: Optional[List[InstanceMaintenanceResult]] = None) -> str:
        """Render health records (and optional maintenance results) to HTML"""
        try:
            template = self.jinja_env.get_template(REPORT_TEMPLATE)
            return template.render(
                records=records,
                maintenance=maintenance or [],
                generated_at=generated_at.strftime("%Y-%m-%d %H:%M:%S"),
                attention_count=sum(1 for record in records if record.needs_attention),
            )
        except Exception as e:
            raise Exception(f"Template rendering failed for {REPORT_TEMPLATE}: {str(e)}")
