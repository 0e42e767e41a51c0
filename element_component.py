from typing import Callable, Dict, List, Tuple

import pandas as pd
import streamlit as st

from utils.formatting import format_rp

FLASH_KEY = "flash_message"


@st.dialog("Konfirmasi")
def confirmation_dialog(message: str, action: Callable[[], Tuple[bool, str]], state_name: str):
    """
    Ask before a destructive action. `action` returns (ok, message); on
    success the message is flashed on the next run.
    """
    st.write(message)

    col_yes, col_no = st.columns(2)

    with col_yes:
        if st.button("Ya", type="primary", key="confirm_yes"):
            ok, msg = action()
            st.session_state[state_name] = ok
            if not ok:
                st.error(msg)
            else:
                flash(msg)
                st.rerun()
    with col_no:
        if st.button("Tidak", key="confirm_no"):
            st.rerun()


def flash(message: str, icon: str = "✅") -> None:
    st.session_state[FLASH_KEY] = (message, icon)


def show_flash() -> None:
    if FLASH_KEY in st.session_state:
        message, icon = st.session_state.pop(FLASH_KEY)
        st.toast(message, icon=icon)


def rupiah_frame(rows: List[Dict], columns: Dict[str, str], money_cols: List[str]) -> pd.DataFrame:
    """
    Build a display DataFrame: pick + rename `columns` and render the
    money columns as "Rp 1.234".
    """
    df = pd.DataFrame(rows, columns=list(columns.keys()))
    for col in money_cols:
        df[col] = df[col].apply(lambda x: format_rp(x) if pd.notnull(x) else "-")
    return df.rename(columns=columns)
