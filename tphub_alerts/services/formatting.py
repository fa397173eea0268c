"""
Message formatting for alert notifications.

Renders scored CompanyAlert lists into channel-specific bodies:

- render_slack_alert_message(): Slack mrkdwn text for a consultant
- render_alert_email_html(): branded HTML email for a consultant
- render_all_clear_message() / render_source_errors_message(): run-level notices

Callers sort companies (highest score first) before rendering; the
formatters keep the order they receive and skip companies without
deviations. All labels are Spanish; the date label always describes the
previous calendar day, which is the activity the alert run inspects.
"""

from datetime import date, timedelta
from html import escape
from typing import Iterable, List, Mapping, Optional, Sequence

from tphub_alerts.models import CompanyAlert, Severity
from tphub_alerts.services.scoring import get_severity


# Sunday-first: index 0 is domingo
WEEKDAYS = ('domingo', 'lunes', 'martes', 'miercoles', 'jueves', 'viernes', 'sabado')
MONTHS = ('ene', 'feb', 'mar', 'abr', 'may', 'jun', 'jul', 'ago', 'sep', 'oct', 'nov', 'dic')

DEFAULT_FIRST_NAME = 'Consultor'

UNASSIGNED_HEADER = ":inbox_tray: *Empresas sin consultor asignado*"

SLACK_MARKERS = {
    Severity.CRITICO: ':red_circle:',
    Severity.URGENTE: ':large_orange_circle:',
    Severity.ATENCION: ':large_yellow_circle:',
}

EMAIL_STYLES = {
    Severity.CRITICO: {'border': '#ef4444', 'bg': '#fef2f2', 'label': '#b91c1c'},
    Severity.URGENTE: {'border': '#f97316', 'bg': '#fff7ed', 'label': '#c2410c'},
    Severity.ATENCION: {'border': '#f59e0b', 'bg': '#fffbeb', 'label': '#b45309'},
}


# =============================================================================
# Labels
# =============================================================================

def get_date_label(today: Optional[date] = None, include_year: bool = False) -> str:
    """
    Label for yesterday as '<weekday> <day> <month>' in Spanish.

    Args:
        today: Run date (defaults to date.today()).
        include_year: Append the four-digit year.

    Example:
        >>> get_date_label(date(2026, 1, 15))
        'miercoles 14 ene'
    """
    yesterday = (today or date.today()) - timedelta(days=1)
    weekday = WEEKDAYS[(yesterday.weekday() + 1) % 7]
    label = f"{weekday} {yesterday.day} {MONTHS[yesterday.month - 1]}"
    if include_year:
        label = f"{label} {yesterday.year}"
    return label


def get_first_name(full_name: Optional[str]) -> str:
    if not full_name or not full_name.strip():
        return DEFAULT_FIRST_NAME
    return full_name.strip().split(' ')[0]


def _visible(companies: Iterable[CompanyAlert]) -> List[CompanyAlert]:
    return [company for company in companies if company.deviations]


def email_subject(companies: Sequence[CompanyAlert]) -> str:
    return f"Resumen de alertas - {len(_visible(companies))} clientes bajo umbral"


# =============================================================================
# Slack
# =============================================================================

def render_slack_alert_message(
    consultant_name: Optional[str],
    date_label: str,
    companies: Sequence[CompanyAlert],
    slack_user_id: Optional[str] = None,
    app_url: Optional[str] = None,
    test: bool = False,
    unassigned: bool = False,
) -> str:
    """
    Render a consultant's alert digest as Slack mrkdwn.

    Layout:
        Buenos dias, *Ana* :wave:
        Resumen de alertas del miercoles 14 ene · 2 clientes bajo umbral

        :red_circle: *#1 Company A* · CRITICO
            • Pedidos: -38% (umbral -20%)

    Args:
        consultant_name: Full name of the recipient; the first word is used.
        date_label: Output of get_date_label().
        companies: Scored companies, already sorted.
        slack_user_id: Adds a mention next to the greeting when set.
        app_url: Dashboard URL for the footer link.
        test: Adds the test banner and footer used by the send-test endpoint.
        unassigned: Replaces the personal greeting with the header of the
            digest for companies nobody follows.
    """
    visible = _visible(companies)
    first_name = get_first_name(consultant_name)

    lines: List[str] = []
    if test:
        lines.append(f":test_tube: *Alerta de prueba - {date_label}*")
        lines.append("")

    if unassigned:
        lines.append(UNASSIGNED_HEADER)
    else:
        greeting = f"Buenos dias, *{first_name}* :wave:"
        if slack_user_id:
            greeting = f"{greeting} <@{slack_user_id}>"
        lines.append(greeting)
    lines.append(f"Resumen de alertas del {date_label} · {len(visible)} clientes bajo umbral")

    for rank, company in enumerate(visible, start=1):
        severity = get_severity(company.score)
        lines.append("")
        lines.append(f"{SLACK_MARKERS[severity]} *#{rank} {company.name}* · {severity.value}")
        for deviation in company.deviations:
            lines.append(f"    • {deviation.label}: {deviation.value} (umbral {deviation.threshold})")

    lines.append("")
    if app_url:
        lines.append(f"<{app_url.rstrip('/')}/alerts|Ver detalles en TPHub>")
    if test:
        lines.append("_Mensaje de prueba desde TPHub Alertas_")

    return "\n".join(lines).rstrip("\n")


def render_all_clear_message(date_label: str) -> str:
    return (
        f":large_green_circle: *Alertas diarias - {date_label}*\n"
        "Todos los restaurantes dentro de rango normal ayer (pedidos, resenas, promos y ads)."
    )


def render_source_errors_message(errors: Sequence[Mapping[str, str]]) -> str:
    lines = [":warning: Errores en alertas diarias:"]
    for error in errors:
        lines.append(f"{error['source']}: {error['message']}")
    return "\n".join(lines)


# =============================================================================
# Email
# =============================================================================

def render_alert_email_html(
    consultant_name: Optional[str],
    date_label: str,
    companies: Sequence[CompanyAlert],
    app_url: str,
) -> str:
    """
    Render a consultant's alert digest as a branded HTML email.

    Every interpolated value is HTML-escaped.
    """
    first_name = get_first_name(consultant_name)
    alerts_url = escape(f"{app_url.rstrip('/')}/alerts", quote=True)

    cards = []
    for company in _visible(companies):
        severity = get_severity(company.score)
        style = EMAIL_STYLES[severity]
        metrics = "\n".join(
            f'<li style="margin: 2px 0; font-size: 13px; color: #374151;">'
            f'{escape(d.label)}: <strong>{escape(d.value)}</strong> '
            f'<span style="color: #9ca3af;">(umbral {escape(d.threshold)})</span></li>'
            for d in company.deviations
        )
        cards.append(
            f'<div style="border-left: 4px solid {style["border"]}; background: {style["bg"]}; '
            f'border-radius: 8px; padding: 12px 16px; margin-bottom: 12px;">'
            f'<table width="100%" cellpadding="0" cellspacing="0" border="0"><tr>'
            f'<td style="font-size: 14px; font-weight: 700; color: #111827;">{escape(company.name)}</td>'
            f'<td align="right"><span style="font-size: 10px; font-weight: 700; color: {style["label"]}; '
            f'background: white; padding: 2px 8px; border-radius: 10px;">{severity.value}</span></td>'
            f'</tr></table>'
            f'<ul style="margin: 6px 0 0; padding: 0 0 0 16px;">{metrics}</ul>'
            f'</div>'
        )

    body = "\n".join(cards) or (
        '<p style="color: #9ca3af; font-size: 14px; text-align: center; padding: 20px 0;">Sin alertas</p>'
    )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="margin: 0; padding: 0; background-color: #f3f7f9; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
  <div style="max-width: 600px; margin: 0 auto; padding: 24px;">
    <div style="background-color: #095789; border-radius: 12px 12px 0 0; padding: 24px; text-align: center;">
      <h1 style="color: white; font-size: 18px; margin: 0; font-weight: 600;">Daily Alerts TPHub</h1>
      <p style="color: rgba(255,255,255,0.8); font-size: 13px; margin: 4px 0 0;">{escape(date_label)}</p>
    </div>
    <div style="background-color: white; padding: 24px; border-radius: 0 0 12px 12px; border: 1px solid #e5e7eb; border-top: none;">
      <p style="color: #6b7280; font-size: 14px; margin: 0 0 20px;">
        Hola {escape(first_name)}, estas son las anomalias detectadas en tus empresas:
      </p>
      {body}
      <div style="text-align: center; margin: 24px 0 16px;">
        <a href="{alerts_url}" style="display: inline-block; background-color: #095789; color: white; text-decoration: none; padding: 10px 24px; border-radius: 8px; font-size: 14px; font-weight: 600;">Ver detalles en TPHub</a>
      </div>
      <hr style="border: none; border-top: 1px solid #e5e7eb; margin: 20px 0;" />
      <p style="color: #9ca3af; font-size: 12px; margin: 0; text-align: center;">ThinkPaladar - Consultoria de Delivery</p>
    </div>
  </div>
</body>
</html>"""
