"""Authentication route registration (JSON session auth)."""

from datetime import datetime, timezone

from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

MIN_PASSWORD_LENGTH = 8


def _user_payload(user):
    return {
        "id": user.id,
        "email": user.email,
        "displayName": user.display_name,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }


def register_auth_routes(
    app,
    *,
    limiter,
    db,
    User,
    rate_limit,
):
    @app.route("/api/auth/register", methods=["POST"])
    @limiter.limit(rate_limit)
    def register():
        data = request.get_json(silent=True) or {}
        email = str(data.get("email", "")).strip().lower()
        password = data.get("password") or ""
        display_name = str(data.get("displayName", "")).strip()

        if not email or "@" not in email or "." not in email:
            return jsonify({"success": False, "message": "Invalid email"}), 400
        if len(password) < MIN_PASSWORD_LENGTH:
            return jsonify({
                "success": False,
                "message": f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            }), 400
        if len(display_name) > 50:
            return jsonify({"success": False, "message": "Display name must be 50 characters or fewer"}), 400
        if db.session.get(User, email) is not None:
            return jsonify({"success": False, "message": "An account with this email already exists"}), 409

        user = User(
            id=email,
            password_hash=generate_password_hash(password),
            display_name=display_name or email.split("@")[0],
        )
        db.session.add(user)
        db.session.commit()
        login_user(user)
        app.logger.info(f"[Auth] Registered {email}")
        return jsonify({"success": True, "user": _user_payload(user)}), 201

    @app.route("/api/auth/login", methods=["POST"])
    @limiter.limit(rate_limit)
    def login():
        data = request.get_json(silent=True) or {}
        email = str(data.get("email", "")).strip().lower()
        password = data.get("password") or ""

        if not email or not password:
            return jsonify({"success": False, "message": "Email and password required"}), 400

        user = db.session.get(User, email)
        if user is None or not user.password_hash or not check_password_hash(user.password_hash, password):
            app.logger.warning(f"[Auth] Failed login for {email}")
            return jsonify({"success": False, "message": "Invalid email or password"}), 401

        user.last_login = datetime.now(timezone.utc)
        db.session.commit()
        login_user(user)
        app.logger.info(f"Successful login for {email}")
        return jsonify({"success": True, "user": _user_payload(user)})

    @app.route("/api/auth/logout", methods=["POST"])
    @login_required
    def logout():
        app.logger.info(f"Logout for {current_user.id}")
        logout_user()
        return jsonify({"success": True})

    @app.route("/api/auth/me")
    @login_required
    def me():
        return jsonify({"success": True, "user": _user_payload(current_user)})
