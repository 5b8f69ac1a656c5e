from quart import Blueprint, jsonify, request

from .schemas import LoginBody, RegisterBody
from .service import authenticate, get_user, register_user
from .session import current_user_id, end_session, start_session
from ..common.validation import invalid_response, parse_body

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/login")
async def login():
    body, errors = parse_body(LoginBody, await request.get_json(silent=True))
    if errors:
        return invalid_response(errors)
    user = await authenticate(body.email, body.password)
    if user is None:
        return jsonify({"success": False, "message": "Identifiants incorrects"}), 401
    response = jsonify({"success": True, "user": user})
    return await start_session(response, user["id"], remember=body.remember)


@bp.post("/register")
async def register():
    body, errors = parse_body(RegisterBody, await request.get_json(silent=True))
    if errors:
        return invalid_response(errors)
    result = await register_user(body.name, body.email, body.password)
    if not result["ok"]:
        return jsonify({"success": False, "message": "Un compte avec cette adresse email existe déjà"}), 400
    user = result["user"]
    response = jsonify({"success": True, "user": user})
    return await start_session(response, user["id"])


@bp.post("/logout")
async def logout():
    return await end_session(jsonify({"success": True}))


@bp.get("/user")
async def me():
    user_id = current_user_id()
    if user_id is None:
        return jsonify({"message": "Non authentifié"}), 401
    user = await get_user(user_id)
    if user is None:
        response = await end_session(jsonify({"message": "Utilisateur non trouvé"}))
        return response, 401
    return jsonify(user)
