from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import Annotated
from fastapi import Form
import logging
from contextlib import asynccontextmanager

from auth import (
    LoginRequired, create_session_token, get_session_user, hash_password, level_for_role, verify_password,
)
from config import Config
from database import Database
from manager import (
    DonationManager, EventManager, MilestoneManager, ParticipantManager, SurveyManager, TemplateManager,
    UserManager,
)
from models import AuthenticatedUser, SessionUser
from routes import donations, events, milestones, participants, surveys, users
from schemas import LoginForm, SignupForm
from utils import db_errors, redirect

# Logging
logging.basicConfig(level=Config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Database
db = Database()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Closing database connection pool")
    db.close()

app = FastAPI(title="Ella Rises", lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Managers shared by the route modules
app.state.db = db
app.state.participants = ParticipantManager(db)
app.state.users = UserManager(db)
app.state.templates = TemplateManager(db)
app.state.events = EventManager(db)
app.state.surveys = SurveyManager(db)
app.state.milestones = MilestoneManager(db)
app.state.donations = DonationManager(db)

for module in (participants, events, surveys, milestones, donations, users):
    app.include_router(module.router)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired):
    return redirect("/login")


# -------------------------------
# Landing / dashboard
# -------------------------------
@app.get("/", response_model=dict, summary="Public landing page or dashboard")
def root(donated: str = "", user: SessionUser = Depends(get_session_user)):
    if not user.is_authenticated:
        return {"message": "Welcome to Ella Rises", "data": {"logged_in": False, "donated": bool(donated)}}
    return {"message": "Dashboard", "data": {"logged_in": True, "user": user.to_dict(), "is_manager": user.is_manager}}


# -------------------------------
# Auth Routes
# -------------------------------
@app.get("/login", response_model=dict, summary="Login form")
def login_form(error: str = "", registered: str = ""):
    return {"message": "Login", "data": {"error": error or None, "registered": bool(registered)}}


@app.post("/login", summary="Log in and start a session")
def login(form: Annotated[LoginForm, Form()]):
    """Check credentials and issue a fresh session cookie."""
    with db_errors("Login error."):
        account = app.state.users.get_for_login(form.username)
    if not account or not verify_password(form.password, account["password"]):
        logger.info(f"Failed login for {form.username}")
        return redirect("/login?error=invalid_credentials")

    user = AuthenticatedUser(
        id=account["user_id"],
        username=account["username"],
        level=level_for_role(account["participant_role"]),
        participant_id=account["participant_id"],
        first_name=account["participant_first_name"],
        last_name=account["participant_last_name"],
        session_version=account["session_version"],
    )
    response = redirect("/")
    response.set_cookie(
        Config.SESSION_COOKIE,
        create_session_token(user),
        max_age=Config.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=Config.COOKIE_SECURE,
    )
    logger.info(f"User {user.username} logged in with level {user.level}")
    return response


@app.post("/logout", summary="End the session")
def logout(user: SessionUser = Depends(get_session_user)):
    response = redirect("/login")
    response.delete_cookie(Config.SESSION_COOKIE)
    if user.is_authenticated:
        with db_errors("Logout error."):
            app.state.users.end_sessions(user.id)
        logger.info(f"User {user.username} logged out")
    return response


@app.get("/register", response_model=dict, summary="Sign-up form")
def signup_form(error: str = ""):
    return {"message": "Register", "data": {"error": error or None}}


@app.post("/register", summary="Create a participant profile and account")
def signup(form: Annotated[SignupForm, Form()]):
    """Self sign-up: the participant row and the account are stored together or not at all."""
    with db_errors("Error creating account"):
        if app.state.users.username_taken(form.username):
            return redirect("/register?error=username_taken")
        user_id, participant_id = app.state.users.create_with_participant(
            form.participant_values(), form.username, hash_password(form.password)
        )
    logger.info(f"User {form.username} ({user_id}) registered as participant {participant_id}")
    return redirect("/login?registered=1")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
