import logging
from typing import Annotated, Callable, Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request

from auth import require_manager
from models import AuthenticatedUser
from utils import db_errors, redirect

logger = logging.getLogger(__name__)


def add_crud_routes(router: APIRouter, *, noun: str, get_manager: Callable, form_model,
                    redirect_to: str, form_options: Optional[Callable] = None,
                    to_values: Optional[Callable] = None, update_values: Optional[Callable] = None):
    """
    Register the manager-only add/edit/delete routes shared by the list modules.

    `form_options(request)` supplies dropdown data for the add/edit forms and
    `to_values(form)` maps a validated form to column values; `update_values(form)`
    does the same for edits and defaults to `to_values`.
    """
    to_values = to_values or (lambda form: form.model_dump())
    update_values = update_values or to_values
    label = noun.capitalize()

    def options(request: Request) -> dict:
        return form_options(request) if form_options else {}

    @router.get("/add", response_model=dict, summary=f"Add {noun} form")
    def add_form(request: Request, user: AuthenticatedUser = Depends(require_manager)):
        with db_errors(f"Error loading {noun} form"):
            return {"message": f"Add {noun}", "data": options(request)}

    @router.post("/add", summary=f"Create a {noun}")
    def add_item(form: Annotated[form_model, Form()], user: AuthenticatedUser = Depends(require_manager),
                 manager=Depends(get_manager)):
        with db_errors(f"Error adding {noun}"):
            item_id = manager.create(to_values(form))
        logger.info(f"{label} {item_id} added by {user.username}")
        return redirect(redirect_to)

    @router.get("/edit/{item_id}", response_model=dict, summary=f"Edit {noun} form")
    def edit_form(item_id: int, request: Request, user: AuthenticatedUser = Depends(require_manager),
                  manager=Depends(get_manager)):
        with db_errors(f"Error loading {noun}"):
            item = manager.get(item_id)
            if not item:
                raise HTTPException(status_code=404, detail=f"{label} not found")
            return {"message": f"Edit {noun}", "data": {noun: item, **options(request)}}

    @router.post("/edit/{item_id}", summary=f"Update a {noun}")
    def edit_item(item_id: int, form: Annotated[form_model, Form()],
                  user: AuthenticatedUser = Depends(require_manager), manager=Depends(get_manager)):
        with db_errors(f"Error updating {noun}"):
            if not manager.update(item_id, update_values(form)):
                raise HTTPException(status_code=404, detail=f"{label} not found")
        logger.info(f"{label} {item_id} updated by {user.username}")
        return redirect(redirect_to)

    @router.post("/delete/{item_id}", summary=f"Delete a {noun}")
    def delete_item(item_id: int, user: AuthenticatedUser = Depends(require_manager),
                    manager=Depends(get_manager)):
        with db_errors(f"Error deleting {noun}"):
            manager.delete(item_id)
        logger.info(f"{label} {item_id} deleted by {user.username}")
        return redirect(redirect_to)
