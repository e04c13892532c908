"""
REST API endpoints for the Syndicate Manager.

Thin JSON layer over the business-logic services. Every endpoint except
the health check requires a player token; the player and syndicate ids
come from the token, never from the request body.

Endpoints:
    GET    /api/health                           - Health check (public)
    GET    /api/campaigns                        - Campaign overview
    GET    /api/campaigns/new                    - Template for a new campaign
    GET    /api/campaigns/<id>                   - Campaign details
    POST   /api/campaigns                        - Create a campaign
    PUT    /api/campaigns/<id>                   - Edit a campaign (manager only)
    POST   /api/campaigns/import                 - Import a campaign report
    POST   /api/campaigns/<id>/loot              - Add loot by item URL
    PUT    /api/campaigns/<id>/signup            - Sign up for a campaign
    DELETE /api/campaigns/<id>/signup            - Withdraw a signup
    PUT    /api/campaigns/<id>/attendance        - Replace attendance (manager only)
    POST   /api/campaigns/<id>/volunteer         - Volunteer as manager
    GET    /api/attendance                       - Attendance percentages
    GET    /api/loot                             - Distribution list
    POST   /api/loot/<id>/requests               - Request loot
    DELETE /api/loot/requests/<id>               - Withdraw a loot request
    POST   /api/loot/<id>/award                  - Award loot to a request
    PATCH  /api/loot/<id>/status                 - Change loot status
    POST   /api/distribution-list                - Move a player to the bottom
    GET    /api/discord-officers                 - List Discord officers
    POST   /api/discord-officers                 - Add a Discord officer (admin only)
    DELETE /api/discord-officers/<login>         - Remove a Discord officer (admin only)
    POST   /api/items/import                     - Import an item set (admin only)

Administrators are the players listed in ``ADMIN_PLAYER_IDS``.
"""

from __future__ import annotations

import logging
import os

from flask import Blueprint, Response, current_app, g, jsonify, request

from .. import db
from ..auth import require_auth
from ..labels import from_label
from ..logic import CampaignLogic, IntegrationLogic, InternalLogic, LootLogic
from ..models import CampaignLootStatus, LootRequestStatus

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)

TRUE_VALUES = {"1", "true", "yes", "on"}


# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------

def _item_client():
    return current_app.extensions["item_client"]


def _campaign_logic() -> CampaignLogic:
    return CampaignLogic(db.session, _item_client())


def _loot_logic() -> LootLogic:
    return LootLogic(db.session, _campaign_logic())


def _is_admin() -> bool:
    """Whether the current player may manage officers and item imports."""
    return g.player_id in current_app.config.get("ADMIN_PLAYER_IDS", ())


def _flag(name: str) -> bool:
    """Read a boolean query-string flag."""
    return request.args.get(name, "").strip().lower() in TRUE_VALUES


def _json_body() -> dict | None:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _int_or_none(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------

@api_bp.route("/health", methods=["GET"])
def health_check() -> tuple[Response, int]:
    """Health check endpoint for deployment verification."""
    return jsonify({
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "unknown"),
        "version": os.getenv("APP_VERSION", "unknown"),
    }), 200


# -----------------------------------------------------------------------------
# Campaigns
# -----------------------------------------------------------------------------

@api_bp.route("/campaigns", methods=["GET"])
@require_auth
def get_campaigns() -> tuple[Response, int]:
    """
    Campaign overview for the authenticated player.

    Query Parameters:
        all_past: Return every past campaign (default: ten most recent).
        only_attended: Limit loot to campaigns the player attended.
    """
    overview = _campaign_logic().get_campaign_overview(
        g.player_id,
        g.syndicate_id,
        all_past_campaigns=_flag("all_past"),
        only_attended=_flag("only_attended"),
    )
    return jsonify(overview.to_dict()), 200


@api_bp.route("/campaigns/new", methods=["GET"])
@require_auth
def get_new_campaign() -> tuple[Response, int]:
    details = _campaign_logic().get_new_campaign(g.syndicate_id)
    return jsonify(details.to_dict()), 200


@api_bp.route("/campaigns/<int:campaign_id>", methods=["GET"])
@require_auth
def get_campaign(campaign_id: int) -> tuple[Response, int]:
    details = _campaign_logic().get_campaign_by_id(
        campaign_id, g.syndicate_id, include_inactive=_flag("include_inactive")
    )
    if details is None:
        return jsonify({"error": "Campaign not found"}), 404
    return jsonify(details.to_dict()), 200


@api_bp.route("/campaigns", methods=["POST"])
@require_auth
def create_campaign() -> tuple[Response, int]:
    """Create a campaign for the authenticated player's syndicate."""
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request body must be JSON"}), 400
    data.pop("id", None)

    campaign = _campaign_logic().create_or_edit_campaign(data, g.syndicate_id)
    if campaign is None:
        return jsonify({"error": "Campaign rejected"}), 400
    return jsonify(campaign.to_dict()), 201


@api_bp.route("/campaigns/<int:campaign_id>", methods=["PUT"])
@require_auth
def update_campaign(campaign_id: int) -> tuple[Response, int]:
    """Edit a campaign; only its manager may do so."""
    logic = _campaign_logic()
    if logic.get_campaign_by_id(campaign_id, g.syndicate_id) is None:
        return jsonify({"error": "Campaign not found"}), 404
    if not logic.player_can_edit_campaign(g.player_id, campaign_id):
        return jsonify({"error": "Only the campaign manager can edit it"}), 403

    data = _json_body()
    if data is None:
        return jsonify({"error": "Request body must be JSON"}), 400
    data["id"] = campaign_id

    campaign = logic.create_or_edit_campaign(data, g.syndicate_id)
    if campaign is None:
        return jsonify({"error": "Campaign rejected"}), 400
    return jsonify(campaign.to_dict()), 200


@api_bp.route("/campaigns/import", methods=["POST"])
@require_auth
def import_campaign() -> tuple[Response, int]:
    """Import a finished campaign from its text report (``{"report": "..."}``)."""
    data = _json_body()
    if data is None or not isinstance(data.get("report", ""), str):
        return jsonify({"error": "'report' must be a string"}), 400

    campaign = _campaign_logic().parse_campaign_report(data.get("report", ""), g.syndicate_id)
    return jsonify(campaign.to_dict()), 201


@api_bp.route("/campaigns/<int:campaign_id>/loot", methods=["POST"])
@require_auth
def add_campaign_loot(campaign_id: int) -> tuple[Response, int]:
    """Add loot to a campaign by item database URL (``{"url": "..."}``)."""
    logic = _campaign_logic()
    if logic.get_campaign_by_id(campaign_id, g.syndicate_id) is None:
        return jsonify({"error": "Campaign not found"}), 404

    data = _json_body()
    if not data or not data.get("url"):
        return jsonify({"error": "'url' is required"}), 400

    loot = logic.add_loot_by_url(campaign_id, data["url"])
    if loot is None:
        return jsonify({"error": "Item not found in the item database"}), 404
    return jsonify(loot.to_dict()), 201


@api_bp.route("/campaigns/<int:campaign_id>/signup", methods=["PUT", "DELETE"])
@require_auth
def set_signup(campaign_id: int) -> tuple[Response, int]:
    attending = request.method == "PUT"
    if not _campaign_logic().set_signup_status(g.player_id, campaign_id, attending):
        return jsonify({"error": "Signup could not be changed"}), 409
    return jsonify({"campaign_id": campaign_id, "attending": attending}), 200


@api_bp.route("/campaigns/<int:campaign_id>/attendance", methods=["PUT"])
@require_auth
def set_attendance(campaign_id: int) -> tuple[Response, int]:
    """Replace the attendance list (``{"player_ids": [...]}``); manager only."""
    logic = _campaign_logic()
    if not logic.player_can_edit_campaign(g.player_id, campaign_id):
        return jsonify({"error": "Only the campaign manager can record attendance"}), 403

    data = _json_body()
    player_ids = data.get("player_ids") if data else None
    if not isinstance(player_ids, list) or not all(
        isinstance(player_id, int) and not isinstance(player_id, bool) for player_id in player_ids
    ):
        return jsonify({"error": "'player_ids' must be a list of integers"}), 400

    if not logic.set_attendance(campaign_id, player_ids, g.syndicate_id):
        return jsonify({"error": "Attendance rejected"}), 400
    return jsonify({"campaign_id": campaign_id, "player_ids": sorted(player_ids)}), 200


@api_bp.route("/campaigns/<int:campaign_id>/volunteer", methods=["POST"])
@require_auth
def volunteer(campaign_id: int) -> tuple[Response, int]:
    if not _campaign_logic().volunteer_for_campaign(g.player_id, campaign_id):
        return jsonify({"error": "Cannot volunteer for this campaign"}), 409
    return jsonify({"campaign_id": campaign_id, "manager_id": g.player_id}), 200


@api_bp.route("/attendance", methods=["GET"])
@require_auth
def get_attendance() -> tuple[Response, int]:
    """Attendance percentages; ``?player_id=`` narrows to one player."""
    player_id = _int_or_none(request.args.get("player_id"))
    summary = _campaign_logic().get_campaign_attendance(player_id, g.syndicate_id)
    return jsonify(summary.to_dict()), 200


# -----------------------------------------------------------------------------
# Loot
# -----------------------------------------------------------------------------

@api_bp.route("/loot", methods=["GET"])
@require_auth
def get_distribution_order() -> tuple[Response, int]:
    """
    Loot distribution list.

    Query Parameters:
        campaign_id: Only loot of this campaign.
        undistributed_only: Hide loot that was already handed out.
        include_inactive: Also list inactive players.
    """
    order = _loot_logic().get_current_distribution_order(
        _int_or_none(request.args.get("campaign_id")),
        _flag("undistributed_only"),
        _flag("include_inactive"),
        g.syndicate_id,
        g.player_id,
    )
    return jsonify(order.to_dict()), 200


@api_bp.route("/loot/<int:loot_id>/requests", methods=["POST"])
@require_auth
def request_loot(loot_id: int) -> tuple[Response, int]:
    """
    Request a piece of loot.

    Request Body (JSON):
        status: ``Interested`` (default) or ``Special Offer``; any spelling
            ``from_label`` understands is accepted.
        special_offer_description: Required for special offers.
        player_id: Request on behalf of another player (default: self).
    """
    data = _json_body() or {}
    status = from_label(LootRequestStatus, data.get("status", "Interested"))
    if status not in (LootRequestStatus.INTERESTED, LootRequestStatus.SPECIAL_OFFER):
        return jsonify({"error": "Invalid loot request status"}), 400

    player_id = _int_or_none(data.get("player_id")) or g.player_id
    loot_request = _loot_logic().request_loot(
        player_id,
        loot_id,
        status=status,
        special_offer_description=data.get("special_offer_description"),
        requested_by_id=g.player_id,
    )
    if loot_request is None:
        return jsonify({"error": "Loot request rejected"}), 400
    return jsonify(loot_request.to_dict()), 201


@api_bp.route("/loot/requests/<int:request_id>", methods=["DELETE"])
@require_auth
def withdraw_loot_request(request_id: int) -> tuple[Response, int]:
    if not _loot_logic().withdraw_loot_request(request_id, g.player_id):
        return jsonify({"error": "Loot request could not be withdrawn"}), 409
    return jsonify({"message": "Loot request withdrawn"}), 200


@api_bp.route("/loot/<int:loot_id>/award", methods=["POST"])
@require_auth
def award_loot(loot_id: int) -> tuple[Response, int]:
    """Award loot to one of its requests (``{"request_id": n}``)."""
    data = _json_body() or {}
    request_id = _int_or_none(data.get("request_id"))
    if request_id is None:
        return jsonify({"error": "'request_id' is required"}), 400

    if not _loot_logic().award_loot(loot_id, request_id, g.syndicate_id):
        return jsonify({"error": "Loot could not be awarded"}), 409
    return jsonify({"loot_id": loot_id, "request_id": request_id}), 200


@api_bp.route("/loot/<int:loot_id>/status", methods=["PATCH"])
@require_auth
def set_loot_status(loot_id: int) -> tuple[Response, int]:
    """Change loot status (``{"status": "ON_LOAN", "holder_id": n}``)."""
    data = _json_body()
    if not data or "status" not in data:
        return jsonify({"error": "'status' field is required"}), 400
    status = from_label(CampaignLootStatus, data["status"])
    if status is None:
        valid = [s.name for s in CampaignLootStatus]
        return jsonify({"error": f"Invalid status. Must be one of: {valid}"}), 400

    holder_id = _int_or_none(data.get("holder_id"))
    if not _loot_logic().set_loot_status(loot_id, status, holder_id, g.syndicate_id):
        return jsonify({"error": "Loot status could not be changed"}), 400
    return jsonify({"loot_id": loot_id, "status": status.name, "holder_id": holder_id}), 200


@api_bp.route("/distribution-list", methods=["POST"])
@require_auth
def append_to_distribution_list() -> tuple[Response, int]:
    """
    Move a player to the bottom of the distribution list.

    Request Body (JSON):
        player_id: Player to move.
        loot_request_id: Request that explains the move (optional).
        comment: Reason for a manual move (optional).
    """
    data = _json_body() or {}
    player_id = _int_or_none(data.get("player_id"))
    if player_id is None:
        return jsonify({"error": "'player_id' is required"}), 400

    moved = _loot_logic().append_player_to_bottom(
        player_id,
        _int_or_none(data.get("loot_request_id")),
        data.get("comment"),
    )
    if not moved:
        return jsonify({"error": "Player could not be moved"}), 400
    return jsonify({"player_id": player_id}), 201


# -----------------------------------------------------------------------------
# Discord officers and items
# -----------------------------------------------------------------------------

@api_bp.route("/discord-officers", methods=["GET"])
@require_auth
def list_discord_officers() -> tuple[Response, int]:
    officers = IntegrationLogic(db.session).get_discord_officer_list()
    return jsonify({"officers": officers, "count": len(officers)}), 200


@api_bp.route("/discord-officers", methods=["POST"])
@require_auth
def add_discord_officer() -> tuple[Response, int]:
    if not _is_admin():
        return jsonify({"error": "Only administrators can manage Discord officers"}), 403

    data = _json_body() or {}
    login_name = data.get("login_name")
    if not isinstance(login_name, str) or not login_name.strip():
        return jsonify({"error": "'login_name' is required"}), 400

    if not IntegrationLogic(db.session).add_discord_officer(login_name):
        return jsonify({"error": "Officer already exists"}), 409
    return jsonify({"login_name": login_name.strip()}), 201


@api_bp.route("/discord-officers/<path:login_name>", methods=["DELETE"])
@require_auth
def remove_discord_officer(login_name: str) -> tuple[Response, int]:
    if not _is_admin():
        return jsonify({"error": "Only administrators can manage Discord officers"}), 403
    if not IntegrationLogic(db.session).remove_discord_officer(login_name):
        return jsonify({"error": "Officer not found"}), 404
    return jsonify({"message": "Officer removed"}), 200


@api_bp.route("/items/import", methods=["POST"])
@require_auth
def import_items() -> tuple[Response, int]:
    """Import a named item set (``{"set": "..."}``) from the item database."""
    if not _is_admin():
        return jsonify({"error": "Only administrators can import items"}), 403

    data = _json_body() or {}
    set_name = data.get("set")
    if not isinstance(set_name, str) or not set_name.strip():
        return jsonify({"error": "'set' is required"}), 400

    stored = InternalLogic(db.session, _item_client()).import_items(set_name.strip())
    return jsonify({"set": set_name.strip(), "imported": stored}), 200


# -----------------------------------------------------------------------------
# Error Handlers
# -----------------------------------------------------------------------------

@api_bp.errorhandler(400)
def bad_request(_: Exception) -> tuple[Response, int]:
    """Return a JSON 400 Bad Request error."""
    return jsonify({"error": "Bad request"}), 400


@api_bp.errorhandler(404)
def not_found(_: Exception) -> tuple[Response, int]:
    """Return a JSON 404 Not Found error."""
    return jsonify({"error": "Resource not found"}), 404


@api_bp.errorhandler(500)
def internal_error(error: Exception) -> tuple[Response, int]:
    """Log the exception and return a JSON 500 Internal Server Error."""
    logger.error("Internal server error: %s", error)
    db.session.rollback()
    return jsonify({"error": "Internal server error"}), 500
