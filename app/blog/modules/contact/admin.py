from __future__ import annotations

from flask import Blueprint, current_app, jsonify, render_template, request

from app.blog.api import json_error, json_ok, read_json_body
from app.blog.modules.contact.service import ContactDeliveryError, SmtpSettings, send_contact_message
from app.blog.rate_limit import client_ip, rate_limited
from app.blog.utils import utcnow
from app.blog.validation import validate_contact_payload

bp = Blueprint("contact", __name__)


@bp.get("/contact")
def contact_page():
    return render_template("public/contact.html")


@bp.post("/api/contact")
@rate_limited("api")
def contact_submit():
    body = read_json_body() or {}
    clean, errors = validate_contact_payload(body)
    if errors:
        return json_error("Invalid form data", 400, details=errors)

    current_app.logger.info(
        "Contact form submission (name=%s, email=%s, subject=%s, ip=%s, at=%s)",
        clean["name"],
        clean["email"],
        clean["subject"],
        client_ip(request),
        utcnow().isoformat(),
    )
    try:
        send_contact_message(
            clean,
            to=current_app.config["ADMIN_EMAIL"],
            smtp=SmtpSettings.from_config(current_app.config),
        )
    except ContactDeliveryError:
        current_app.logger.exception("Contact form delivery failed")
        return json_error("Failed to send message. Please try again later.", 500)
    return json_ok(message="Message sent successfully!")


@bp.route("/api/contact", methods=["GET", "PUT", "DELETE"])
def contact_method_not_allowed():
    return jsonify({"error": "Method not allowed"}), 405
