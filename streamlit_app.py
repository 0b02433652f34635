"""
Math Tutor - Streamlit Frontend

Chat with the AI math tutor, follow token usage, manage referrals and,
for admins, review referral risk, analytics and data migrations.
Connects to the FastAPI backend for processing.

Run with: streamlit run streamlit_app.py
"""
import os
import uuid

import plotly.express as px
import requests
import streamlit as st

# ============================================================
# Configuration
# ============================================================

API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000")

st.set_page_config(
    page_title="Math Tutor",
    page_icon="📐",
    layout="wide",
    initial_sidebar_state="expanded"
)

STRINGS = {
    "pl": {
        "title": "📐 Korepetytor matematyki",
        "subtitle": "Zadaj pytanie, a tutor poprowadzi Cię krok po kroku",
        "online": "🟢 Serwer dostępny",
        "offline": "🔴 Serwer niedostępny",
        "reconnect": "🔄 Połącz ponownie",
        "token_label": "Token dostępu",
        "sign_in": "Zaloguj",
        "sign_out": "Wyloguj",
        "signed_out": "Wklej token dostępu w panelu bocznym, aby zacząć.",
        "chat_tab": "💬 Czat",
        "referrals_tab": "🎁 Polecenia",
        "admin_tab": "🛠️ Administracja",
        "chat_input": "Napisz wiadomość do tutora...",
        "thinking": "Tutor myśli...",
        "new_chat": "➕ Nowa rozmowa",
        "topic": "Temat",
        "tokens": "Wykorzystane tokeny",
        "upgrade": "Zbliżasz się do limitu tokenów. Rozważ wyższy plan.",
        "trial_expired": "Okres próbny się zakończył. Masz teraz ograniczony plan darmowy.",
        "dismiss": "Ukryj",
        "your_code": "Twój kod polecający",
        "stats": "Statystyki",
        "invited": "Zaproszeni",
        "activated": "Aktywowani",
        "converted": "Kupili plan",
        "points": "Punkty",
        "rewards": "Nagrody",
        "to_days": "Zamień na dni",
        "to_tokens": "Zamień na tokeny",
        "converted_ok": "Nagroda zamieniona",
        "no_rewards": "Brak nagród do wymiany.",
        "risk_review": "Przegląd ryzyka",
        "analytics": "Analityka",
        "migration": "Migracja",
        "block": "Zablokuj",
        "blocked": "Polecenie zablokowane",
        "period": "Okres",
        "run": "Uruchom",
        "not_admin": "Brak uprawnień administratora.",
        "error": "Błąd",
    },
    "en": {
        "title": "📐 Math Tutor",
        "subtitle": "Ask a question and the tutor will guide you step by step",
        "online": "🟢 Server online",
        "offline": "🔴 Server offline",
        "reconnect": "🔄 Reconnect",
        "token_label": "Access token",
        "sign_in": "Sign in",
        "sign_out": "Sign out",
        "signed_out": "Paste your access token in the sidebar to start.",
        "chat_tab": "💬 Chat",
        "referrals_tab": "🎁 Referrals",
        "admin_tab": "🛠️ Admin",
        "chat_input": "Write a message to the tutor...",
        "thinking": "The tutor is thinking...",
        "new_chat": "➕ New chat",
        "topic": "Topic",
        "tokens": "Tokens used",
        "upgrade": "You are close to your token limit. Consider upgrading.",
        "trial_expired": "Your trial has ended. You are on the limited free plan.",
        "dismiss": "Dismiss",
        "your_code": "Your referral code",
        "stats": "Stats",
        "invited": "Invited",
        "activated": "Activated",
        "converted": "Converted",
        "points": "Points",
        "rewards": "Rewards",
        "to_days": "Convert to days",
        "to_tokens": "Convert to tokens",
        "converted_ok": "Reward converted",
        "no_rewards": "No rewards to convert.",
        "risk_review": "Risk review",
        "analytics": "Analytics",
        "migration": "Migration",
        "block": "Block",
        "blocked": "Referral blocked",
        "period": "Period",
        "run": "Run",
        "not_admin": "Admin rights required.",
        "error": "Error",
    },
}

st.markdown("""
<style>
    /* Warm paper theme */
    @import url('https://fonts.googleapis.com/css2?family=Inter:wght@400;500;600&display=swap');

    html, body, [class*="css"], .stMarkdown, p {
        font-family: 'Inter', sans-serif;
        color: #334155 !important;
    }
    .stApp {
        background-color: #fdfbf7;
    }
    .main .block-container {
        padding-top: 2rem;
        max-width: 1100px;
    }
    div[data-testid="stMetric"] {
        background-color: #ffffff;
        border: 1px solid #e5e7eb;
        padding: 1rem;
        border-radius: 12px;
    }
    div[data-testid="stMetricValue"] {
        color: #d97706 !important;
    }
    .stChatMessage {
        background-color: #ffffff;
        border-radius: 12px;
        border: 1px solid #f3f4f6;
    }
    [data-testid="stSidebar"] {
        background-color: #f9f8f4;
        border-right: 1px solid #e5e7eb;
    }
</style>
""", unsafe_allow_html=True)


# ============================================================
# Session State Initialization
# ============================================================

def init_session_state():
    """Initialize session state variables."""
    defaults = {
        "token": None,
        "language": "pl",
        "chat_session_id": str(uuid.uuid4()),
        "messages": [],
        "backend_connected": False,
        "is_admin": None,
        # Banner dismissal flags
        "dismissed_upgrade": False,
        "dismissed_trial": False,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def t(key: str) -> str:
    """Localized UI string."""
    table = STRINGS.get(st.session_state.language, STRINGS["pl"])
    return table.get(key, STRINGS["pl"].get(key, key))


def check_backend():
    """Check if backend is available."""
    try:
        response = requests.get(f"{API_BASE_URL}/health", timeout=10)
        st.session_state.backend_connected = response.status_code == 200
    except requests.exceptions.RequestException:
        st.session_state.backend_connected = False
    return st.session_state.backend_connected


# ============================================================
# API Functions
# ============================================================

def _headers() -> dict:
    return {
        "Authorization": f"Bearer {st.session_state.token}",
        "Accept-Language": st.session_state.language,
    }


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    return body.get("response") or body.get("message") or f"HTTP {response.status_code}"


def api_call(method: str, path: str, timeout: int = 30, **kwargs) -> dict:
    """
    Call a backend handler.

    Returns the JSON body, or {"error": message, "status": code} on failure.
    """
    try:
        response = requests.request(method, f"{API_BASE_URL}{path}", headers=_headers(), timeout=timeout, **kwargs)
    except requests.exceptions.Timeout:
        return {"error": "Request timed out.", "status": None}
    except requests.exceptions.ConnectionError:
        return {"error": "Cannot connect to backend server.", "status": None}

    if response.status_code == 200:
        return response.json()
    return {"error": _error_message(response), "status": response.status_code}


def send_message(message: str, topic: str) -> dict:
    """Send a message to the AI tutor."""
    return api_call(
        "POST", "/ai-chat", timeout=120,
        json={
            "message": message,
            "sessionId": st.session_state.chat_session_id,
            "topic": topic or None,
        },
    )


def get_subscription() -> dict:
    return api_call("POST", "/check-subscription")


def get_referrals() -> dict:
    return api_call("GET", "/referrals/me")


def check_admin() -> bool:
    """Admin endpoints answer 403 for everyone else."""
    if st.session_state.is_admin is None:
        result = api_call("POST", "/system-migration", json={"action": "status"})
        st.session_state.is_admin = "error" not in result
    return st.session_state.is_admin


# ============================================================
# UI Components
# ============================================================

def render_sidebar():
    """Render connection status, language and sign-in."""
    with st.sidebar:
        st.title(t("title"))

        language = st.radio("🌐", ["pl", "en"], horizontal=True,
                            index=0 if st.session_state.language == "pl" else 1)
        if language != st.session_state.language:
            st.session_state.language = language
            st.rerun()

        if st.session_state.backend_connected:
            st.success(t("online"))
        else:
            st.error(t("offline"))
            if st.button(t("reconnect"), use_container_width=True):
                if check_backend():
                    st.rerun()
            return

        st.divider()

        if st.session_state.token:
            if st.button(t("sign_out"), use_container_width=True):
                for key in ("token", "is_admin"):
                    st.session_state[key] = None
                st.session_state.messages = []
                st.rerun()
        else:
            token = st.text_input(t("token_label"), type="password")
            if st.button(t("sign_in"), use_container_width=True, disabled=not token):
                st.session_state.token = token.strip()
                st.session_state.is_admin = None
                st.rerun()

        if st.session_state.token:
            st.divider()
            render_token_usage()

        st.divider()
        st.caption(f"v1.0.0 | Chat: ...{st.session_state.chat_session_id[-6:]}")


def render_token_usage():
    """Token progress bar plus the upgrade and trial banners."""
    summary = get_subscription()
    if "error" in summary:
        st.caption(f"{t('error')}: {summary['error']}")
        return

    percentage = min(int(summary.get("usage_percentage", 0)), 100)
    st.markdown(f"**{t('tokens')}** ({summary.get('subscription_type')})")
    st.progress(percentage / 100, text=summary.get("token_message", ""))

    if summary.get("show_upgrade_prompt") and not st.session_state.dismissed_upgrade:
        st.warning(t("upgrade"))
        if st.button(t("dismiss"), key="dismiss_upgrade"):
            st.session_state.dismissed_upgrade = True
            st.rerun()

    if summary.get("is_trial_expired") and not st.session_state.dismissed_trial:
        st.info(t("trial_expired"))
        if st.button(t("dismiss"), key="dismiss_trial"):
            st.session_state.dismissed_trial = True
            st.rerun()


def render_chat():
    """Render the tutor chat."""
    st.markdown(f"## {t('title')}")
    st.markdown(t("subtitle"))

    col_topic, col_new = st.columns([0.75, 0.25])
    with col_topic:
        topic = st.text_input(t("topic"), value="", label_visibility="collapsed", placeholder=t("topic"))
    with col_new:
        if st.button(t("new_chat"), use_container_width=True):
            st.session_state.chat_session_id = str(uuid.uuid4())
            st.session_state.messages = []
            st.rerun()

    for msg in st.session_state.messages:
        with st.chat_message(msg["role"]):
            st.markdown(msg["content"])
            for action in msg.get("suggestions", []):
                st.caption(f"💡 {action}")

    if prompt := st.chat_input(t("chat_input")):
        st.session_state.messages.append({"role": "user", "content": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)

        with st.chat_message("assistant"):
            with st.spinner(t("thinking")):
                response = send_message(prompt, topic)

            if "error" in response:
                st.error(f"❌ {response['error']}")
                st.session_state.messages.append({"role": "assistant", "content": response["error"]})
                return

            insights = response.get("insights") or {}
            st.markdown(response.get("response", ""))
            suggestions = insights.get("suggestedActions", [])
            for action in suggestions:
                st.caption(f"💡 {action}")
            st.caption(f"🔢 {response.get('tokensUsed', 0)} tokens")

            st.session_state.messages.append({
                "role": "assistant",
                "content": response.get("response", ""),
                "suggestions": suggestions,
            })


def render_referrals():
    """Referral code, stats and convertible rewards."""
    overview = get_referrals()
    if "error" in overview:
        st.error(overview["error"])
        return

    if not overview.get("code"):
        created = api_call("POST", "/create-referral-code")
        if "error" in created:
            st.error(created["error"])
            return
        overview["code"] = created["code"]

    st.markdown(f"### {t('your_code')}")
    st.code(overview["code"], language=None)

    stats = overview.get("stats") or {}
    st.markdown(f"### {t('stats')}")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric(t("invited"), len(overview.get("referrals", [])))
    c2.metric(t("activated"), stats.get("activated_referrals", 0))
    c3.metric(t("converted"), stats.get("successful_referrals", 0))
    c4.metric(t("points"), stats.get("available_points", 0))

    st.markdown(f"### {t('rewards')}")
    convertible = [
        r for r in overview.get("rewards", [])
        if r.get("kind") == "convertible" and r.get("status") == "released"
    ]
    if not convertible:
        st.info(t("no_rewards"))
        return

    for reward in convertible:
        meta = reward.get("meta") or {}
        col_label, col_days, col_tokens = st.columns([0.5, 0.25, 0.25])
        col_label.markdown(f"🎁 {meta.get('days_amount', 0)} / {meta.get('tokens_amount', 0)}")
        for column, target, label in ((col_days, "days", t("to_days")), (col_tokens, "tokens", t("to_tokens"))):
            if target in meta.get("convertible_to", []) and column.button(label, key=f"{target}_{reward['id']}"):
                result = api_call("POST", "/consume-convertible-reward",
                                  json={"rewardId": reward["id"], "convertTo": target})
                if "error" in result:
                    st.error(result["error"])
                else:
                    st.toast(f"✅ {t('converted_ok')}: +{result.get('amount')}")
                    st.rerun()


def render_risk_review():
    referrals = api_call("GET", "/admin/referrals")
    if "error" in referrals:
        st.error(referrals["error"])
        return

    for referral in referrals.get("referrals", []):
        factors = ", ".join(f["factor"] for f in referral.get("risk_factors", []))
        col_info, col_action = st.columns([0.8, 0.2])
        col_info.markdown(
            f"**{referral['risk_score']}** · {referral['stage']} · "
            f"`{(referral.get('referred_user_id') or '')[:8]}` · {factors or '-'}"
        )
        if referral["stage"] in ("invited", "activated") and col_action.button(t("block"), key=f"block_{referral['id']}"):
            result = api_call("POST", f"/admin/referrals/{referral['id']}/block", json={"reason": "manual_review"})
            if "error" in result:
                st.error(result["error"])
            else:
                st.toast(t("blocked"))
                st.rerun()


def render_analytics():
    period = st.selectbox(t("period"), ["1d", "7d", "30d", "90d"], index=1)

    dashboard = api_call("POST", "/analytics", json={"method": "getDashboardMetrics", "period": period})
    if "error" in dashboard:
        st.error(dashboard["error"])
        return

    metrics = dashboard["metrics"]
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Page views", metrics["totalPageViews"], metrics["pageViewsChange"])
    c2.metric("Sessions", metrics["totalSessions"])
    c3.metric("Avg duration", f"{metrics['averageSessionDuration']} min")
    c4.metric("Bounce rate", f"{metrics['bounceRate']}%")

    pages = api_call("POST", "/analytics", json={"method": "getPopularPages", "period": period})
    if pages.get("popularPages"):
        fig = px.bar(pages["popularPages"], x="route", y="pageViews", title="Popular pages")
        st.plotly_chart(fig, use_container_width=True)

    behavior = api_call("POST", "/analytics", json={"method": "getUserBehavior", "period": period})
    if behavior.get("deviceTypes"):
        fig = px.pie(behavior["deviceTypes"], names="device", values="count", title="Devices")
        st.plotly_chart(fig, use_container_width=True)


def render_migration():
    status = api_call("POST", "/system-migration", json={"action": "status"})
    if "error" in status:
        st.error(status["error"])
        return

    cols = st.columns(3)
    for column, key in zip(cols, ("profiles", "sessions", "content")):
        counts = status[key]
        column.metric(key.title(), f"{counts['migrated']} / {counts['total']}")

    action = st.selectbox("Action", ["migrate_profiles", "migrate_sessions", "sync_content_structure"])
    if st.button(t("run")):
        result = api_call("POST", "/system-migration", json={"action": action}, timeout=120)
        if "error" in result:
            st.error(result["error"])
        else:
            st.success(f"✅ {result}")


def render_admin():
    if not check_admin():
        st.info(t("not_admin"))
        return

    review_tab, analytics_tab, migration_tab = st.tabs([t("risk_review"), t("analytics"), t("migration")])
    with review_tab:
        render_risk_review()
    with analytics_tab:
        render_analytics()
    with migration_tab:
        render_migration()


# ============================================================
# Main App
# ============================================================

def main():
    """Main application entry point."""
    init_session_state()

    if not st.session_state.backend_connected:
        check_backend()

    render_sidebar()

    if not st.session_state.backend_connected:
        st.warning("⚠️ Cannot connect to backend. Please start the server:")
        st.code("uvicorn tutorapi.api.main:app --reload --port 8000", language="bash")
        return

    if not st.session_state.token:
        st.info(t("signed_out"))
        return

    chat_tab, referrals_tab, admin_tab = st.tabs([t("chat_tab"), t("referrals_tab"), t("admin_tab")])
    with chat_tab:
        render_chat()
    with referrals_tab:
        render_referrals()
    with admin_tab:
        render_admin()


if __name__ == "__main__":
    main()
