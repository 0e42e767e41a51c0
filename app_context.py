import logging
import os
from dataclasses import dataclass
from datetime import date
from typing import Any, Optional, Tuple

import streamlit as st

from data_integrator import get_client

logger = logging.getLogger(__name__)

CONTEXT_KEY = "app_context"
THEMES = ("light", "dark")

_DARK_CSS = """
<style>
.stApp { background-color: #141414; color: #f2f2f2; }
[data-testid="stSidebar"] { background-color: #1f1f1f; }
</style>
"""


@dataclass
class AppContext:
    """
    Per-browser-session state shared by every page: the backend auth
    session and the UI theme.
    """
    session: Optional[Any] = None
    user_email: str = ""
    theme: str = "light"

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None


def get_context() -> AppContext:
    if CONTEXT_KEY not in st.session_state:
        st.session_state[CONTEXT_KEY] = AppContext()
    return st.session_state[CONTEXT_KEY]


def report_year() -> int:
    raw = os.getenv("REPORT_YEAR")
    return int(raw) if raw and raw.isdigit() else date.today().year


def sign_in(email: str, password: str) -> Tuple[bool, str]:
    if not email or not password:
        return False, "Email dan password wajib diisi"
    try:
        resp = get_client().auth.sign_in_with_password({"email": email, "password": password})
    except Exception as e:
        logger.warning("Login failed for %s: %s", email, e)
        return False, str(e) or "Login gagal"

    if not resp.session:
        return False, "Login gagal"

    ctx = get_context()
    ctx.session = resp.session
    ctx.user_email = resp.user.email if resp.user else email
    logger.info("Signed in as %s", ctx.user_email)
    return True, "Berhasil masuk"


def sign_out() -> None:
    ctx = get_context()
    try:
        get_client().auth.sign_out()
    except Exception as e:
        logger.warning("Sign out failed: %s", e)
    ctx.session = None
    ctx.user_email = ""


def toggle_theme() -> None:
    ctx = get_context()
    ctx.theme = "dark" if ctx.theme == "light" else "light"


def apply_theme() -> None:
    if get_context().theme == "dark":
        st.markdown(_DARK_CSS, unsafe_allow_html=True)


def _login_form() -> None:
    st.title("Masuk")
    with st.form("login_form", enter_to_submit=True):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Masuk", type="primary")

    if submitted:
        ok, msg = sign_in(email, password)
        if ok:
            st.toast(msg)
            st.rerun()
        else:
            st.error(msg)


def require_session() -> AppContext:
    """
    Gate a page behind the backend session: without one the login form is
    rendered and the script stops here.
    """
    ctx = get_context()
    apply_theme()
    if not ctx.is_authenticated:
        _login_form()
        st.stop()

    with st.sidebar:
        st.caption(f"Masuk sebagai **{ctx.user_email}**")
        col_theme, col_out = st.columns(2)
        with col_theme:
            st.button("🌓 Tema", on_click=toggle_theme, key="toggle_theme")
        with col_out:
            if st.button("Keluar", key="sign_out"):
                sign_out()
                st.rerun()
    return ctx
