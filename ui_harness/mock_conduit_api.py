"""Mock Conduit application for harness tests.

Implements the slice of the Conduit API the harness touches:
- POST /api/users: register an account
- POST /api/users/login: authenticate, returns a JWT-like token
- GET/PUT /api/user: read and update the current user's settings

and minimal /login, /settings and / pages that behave like the Conduit
front end (the token is kept in localStorage under ``jwtToken``).

State is in-memory and module-level; call ``reset_mock_state()`` between
tests. Knobs in ``BEHAVIOUR`` inject rejections and slow registrations.
"""
from __future__ import annotations

import re
import secrets
import time
from typing import Any, Dict, Optional

from flask import Flask, Response, jsonify, request

# Mock data storage
USERS: Dict[str, Dict[str, Any]] = {}  # email -> {username, email, password, bio, image}
TOKENS: Dict[str, str] = {}  # token -> email
CALLS: Dict[str, int] = {"register": 0, "login": 0, "update": 0}

BEHAVIOUR: Dict[str, Any] = {
    "reject_registrations": 0,  # number of upcoming registrations to reject with 422
    "registration_delay": 0.0,  # seconds to sleep before answering a registration
}

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _errors(field: str, message: str, status: int = 422):
    return jsonify({"errors": {field: [message]}}), status


def _user_payload(user: Dict[str, Any], token: str) -> Dict[str, Any]:
    return {
        "user": {
            "username": user["username"],
            "email": user["email"],
            "bio": user.get("bio"),
            "image": user.get("image"),
            "token": token,
        }
    }


def _issue_token(email: str) -> str:
    token = secrets.token_hex(16)
    TOKENS[token] = email
    return token


def _current_user() -> Optional[Dict[str, Any]]:
    header = request.headers.get("Authorization", "")
    if not header.startswith("Token "):
        return None
    email = TOKENS.get(header[len("Token "):])
    return USERS.get(email) if email else None


def create_mock_api_app() -> Flask:
    """Create and configure the mock Conduit Flask app."""
    app = Flask(__name__)
    app.config["TESTING"] = True

    @app.route("/api/users", methods=["POST"])
    def register():
        CALLS["register"] += 1
        if BEHAVIOUR["registration_delay"]:
            time.sleep(BEHAVIOUR["registration_delay"])

        data = (request.get_json(silent=True) or {}).get("user", {})
        username = data.get("username", "")
        email = data.get("email", "")
        password = data.get("password", "")

        if BEHAVIOUR["reject_registrations"] > 0:
            BEHAVIOUR["reject_registrations"] -= 1
            return _errors("username", "has already been taken")
        for field, value in (("username", username), ("email", email), ("password", password)):
            if not value:
                return _errors(field, "can't be blank")
        if not EMAIL_PATTERN.match(email):
            return _errors("email", "is invalid")
        if email in USERS:
            return _errors("email", "has already been taken")
        if any(u["username"] == username for u in USERS.values()):
            return _errors("username", "has already been taken")

        USERS[email] = {"username": username, "email": email, "password": password, "bio": None, "image": None}
        return jsonify(_user_payload(USERS[email], _issue_token(email))), 201

    @app.route("/api/users/login", methods=["POST"])
    def login():
        CALLS["login"] += 1
        data = (request.get_json(silent=True) or {}).get("user", {})
        user = USERS.get(data.get("email", ""))
        if not user or user["password"] != data.get("password"):
            return _errors("email or password", "is invalid", 403)
        return jsonify(_user_payload(user, _issue_token(user["email"]))), 200

    @app.route("/api/user", methods=["GET"])
    def current_user():
        user = _current_user()
        if user is None:
            return jsonify({"errors": {"message": ["missing authorization credentials"]}}), 401
        token = request.headers["Authorization"][len("Token "):]
        return jsonify(_user_payload(user, token)), 200

    @app.route("/api/user", methods=["PUT"])
    def update_user():
        CALLS["update"] += 1
        user = _current_user()
        if user is None:
            return jsonify({"errors": {"message": ["missing authorization credentials"]}}), 401
        changes = (request.get_json(silent=True) or {}).get("user", {})

        email = changes.get("email")
        if email is not None and email != user["email"]:
            if not EMAIL_PATTERN.match(email):
                return _errors("email", "is invalid")
            if email in USERS:
                return _errors("email", "has already been taken")
        if "username" in changes and not changes["username"]:
            return _errors("username", "can't be blank")

        old_email = user["email"]
        for field in ("username", "email", "bio", "image"):
            if field in changes:
                user[field] = changes[field]
        if changes.get("password"):
            user["password"] = changes["password"]
        if user["email"] != old_email:
            USERS[user["email"]] = USERS.pop(old_email)
            for token, owner in TOKENS.items():
                if owner == old_email:
                    TOKENS[token] = user["email"]

        token = request.headers["Authorization"][len("Token "):]
        return jsonify(_user_payload(user, token)), 200

    @app.route("/", methods=["GET"])
    def home():
        return _page("Home", HOME_BODY)

    @app.route("/login", methods=["GET"])
    def login_page():
        return _page("Sign in", LOGIN_BODY)

    @app.route("/settings", methods=["GET"])
    def settings_page():
        return _page("Settings", SETTINGS_BODY)

    return app


def _page(title: str, body: str) -> Response:
    html = PAGE_TEMPLATE.replace("{title}", title).replace("{body}", body)
    return Response(html, mimetype="text/html")


PAGE_TEMPLATE = """<!doctype html>
<html><head><meta charset="utf-8"><title>{title} - Conduit</title></head>
<body><nav><a href="/">conduit</a> <span id="nav-user"></span></nav>
<div class="container">{body}</div>
<script>
const token = () => window.localStorage.getItem('jwtToken');
function showErrors(errors) {
  const list = document.querySelector('.error-messages');
  list.innerHTML = '';
  for (const [field, messages] of Object.entries(errors || {})) {
    for (const message of messages) {
      const li = document.createElement('li');
      li.textContent = field + ' ' + message;
      list.appendChild(li);
    }
  }
}
</script>
</body></html>"""

HOME_BODY = """<h1>conduit</h1><p>A place to share your knowledge.</p>
<script>
if (token()) { document.getElementById('nav-user').textContent = 'signed in'; }
</script>"""

LOGIN_BODY = """<h1>Sign in</h1>
<ul class="error-messages"></ul>
<form id="login-form">
  <input type="email" placeholder="Email">
  <input type="password" placeholder="Password">
  <button type="submit">Sign in</button>
</form>
<script>
document.getElementById('login-form').addEventListener('submit', async (event) => {
  event.preventDefault();
  const body = {user: {
    email: document.querySelector("input[placeholder='Email']").value,
    password: document.querySelector("input[placeholder='Password']").value,
  }};
  const response = await fetch('/api/users/login', {
    method: 'POST', headers: {'Content-Type': 'application/json'}, body: JSON.stringify(body),
  });
  const data = await response.json();
  if (response.ok) {
    window.localStorage.setItem('jwtToken', data.user.token);
    window.location.href = '/';
  } else {
    showErrors(data.errors);
  }
});
</script>"""

SETTINGS_BODY = """<h1>Your Settings</h1>
<ul class="error-messages"></ul>
<form id="settings-form">
  <input type="text" placeholder="URL of profile picture">
  <input type="text" placeholder="Username">
  <textarea placeholder="Short bio about you"></textarea>
  <input type="email" placeholder="Email">
  <input type="password" placeholder="New Password">
  <button type="submit">Update Settings</button>
</form>
<script>
const fields = {
  image: "input[placeholder='URL of profile picture']",
  username: "input[placeholder='Username']",
  bio: "textarea[placeholder='Short bio about you']",
  email: "input[placeholder='Email']",
  password: "input[type='password']",
};
const auth = () => ({'Content-Type': 'application/json', 'Authorization': 'Token ' + token()});
fetch('/api/user', {headers: auth()}).then(async (response) => {
  if (!response.ok) { window.location.href = '/login'; return; }
  const data = await response.json();
  for (const name of ['image', 'username', 'bio', 'email']) {
    document.querySelector(fields[name]).value = data.user[name] || '';
  }
});
document.getElementById('settings-form').addEventListener('submit', async (event) => {
  event.preventDefault();
  const user = {};
  for (const name of ['image', 'username', 'bio', 'email', 'password']) {
    const value = document.querySelector(fields[name]).value;
    if (name !== 'password' || value) { user[name] = value; }
  }
  const response = await fetch('/api/user', {method: 'PUT', headers: auth(), body: JSON.stringify({user})});
  const data = await response.json();
  if (response.ok) { showErrors({}); } else { showErrors(data.errors); }
});
</script>"""


def reset_mock_state():
    """Reset all mock state (users, tokens, counters, behaviour knobs)."""
    USERS.clear()
    TOKENS.clear()
    for key in CALLS:
        CALLS[key] = 0
    BEHAVIOUR["reject_registrations"] = 0
    BEHAVIOUR["registration_delay"] = 0.0


def seed_user(username: str, email: str, password: str) -> Dict[str, Any]:
    """Create an account directly, bypassing the registration endpoint."""
    USERS[email] = {"username": username, "email": email, "password": password, "bio": None, "image": None}
    return USERS[email]


if __name__ == "__main__":
    # For exercising the mock directly
    app = create_mock_api_app()
    print("Mock Conduit running on http://localhost:5556 (API under /api)")
    app.run(host="0.0.0.0", port=5556, debug=True)
