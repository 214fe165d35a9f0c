"""HTTP API.

画面（フロントエンド）から呼ばれる薄いラッパー。処理本体は各モジュールにある。
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from urllib.parse import urlparse

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from voteboard.colors import extract_dominant_color
from voteboard.community import CommunityVotes
from voteboard.config import (
    DEFAULT_BUTTON_COLOR,
    DEFAULT_PRESENCE_COLOR,
    EXAMPLE_CLIENT,
    RANK_SLOT_COUNT,
    VOTE_ROOT_PAGE_ID,
)
from voteboard.errors import ConfigurationError, UpstreamUnavailable, VoteError
from voteboard.models import DesignVote, ImagePayload, PublishRequest
from voteboard.notion import NotionStore, get_store
from voteboard.publisher import Publisher
from voteboard.reader import VoteReader
from voteboard.screenshot import capture_screenshot, example_screenshot_url, favicon_url, validate_url
from voteboard.site_meta import fetch_favicon, fetch_site_meta
from voteboard.submission import VoteSubmitter

logger = logging.getLogger(__name__)

app = FastAPI(title="Voteboard", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VoteError)
async def vote_error_handler(request: Request, exc: VoteError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path,
                     type(exc).__name__, exc.message)
    body = {"error": exc.public_message}
    rule = getattr(exc, "rule", None)
    if rule:
        body["rule"] = rule
    return JSONResponse(body, status_code=exc.status_code)


def get_root_page_id() -> str:
    if not VOTE_ROOT_PAGE_ID:
        raise ConfigurationError("VOTE_ROOT_PAGE_ID not configured")
    return VOTE_ROOT_PAGE_ID


# --- リクエストボディ ---

class VoteEntryBody(BaseModel):
    page_id: str
    ranking: str


class SubmitBody(BaseModel):
    votes: list[VoteEntryBody]
    comment: str | None = None
    client_page_id: str
    result_row_id: str | None = None
    lang: str = "fr"


class ImageBody(BaseModel):
    source: str
    filename: str = "screenshot.png"


class PublishBody(BaseModel):
    site_url: str
    screenshot: ImageBody | None = None
    button_color: str = DEFAULT_BUTTON_COLOR
    presence_color: str = DEFAULT_PRESENCE_COLOR
    lang: str = "fr"
    client_name: str | None = None
    images: dict[str, ImageBody] = Field(default_factory=dict)
    concepts: list[str] | None = None


class CommunityVoteBody(BaseModel):
    concept_id: str
    concept_label: str
    voter_name: str | None = None
    site_url: str | None = None


class ScreenshotBody(BaseModel):
    url: str
    suggest_colors: bool = False


# --- エンドポイント ---

@app.get("/api/votes/{identifier}")
def get_vote(identifier: str, store: NotionStore = Depends(get_store),
             root_page_id: str = Depends(get_root_page_id)) -> dict:
    view = VoteReader(store, root_page_id).read(identifier)
    return asdict(view)


@app.post("/api/votes/submit")
def submit_vote(body: SubmitBody, store: NotionStore = Depends(get_store)) -> dict:
    votes = [DesignVote(page_id=v.page_id, ranking=v.ranking) for v in body.votes]
    result = VoteSubmitter(store, slots=RANK_SLOT_COUNT).submit(
        votes, body.comment, body.client_page_id, body.result_row_id, body.lang,
    )
    return {"success": True, **asdict(result)}


@app.post("/api/votes/publish")
def publish(body: PublishBody, store: NotionStore = Depends(get_store),
            root_page_id: str = Depends(get_root_page_id)) -> dict:
    req = PublishRequest(
        site_url=body.site_url,
        screenshot=ImagePayload(**body.screenshot.model_dump()) if body.screenshot else None,
        button_color=body.button_color,
        presence_color=body.presence_color,
        lang=body.lang,
        client_name=body.client_name,
        images={cid: ImagePayload(**img.model_dump()) for cid, img in body.images.items()},
        concepts=tuple(body.concepts) if body.concepts else None,
    )
    result = Publisher(store, root_page_id).publish(req)
    return {"success": True, **asdict(result)}


@app.post("/api/community-votes")
def community_vote(body: CommunityVoteBody, background: BackgroundTasks,
                   store: NotionStore = Depends(get_store),
                   root_page_id: str = Depends(get_root_page_id)) -> dict:
    community = CommunityVotes(store, root_page_id)
    database_id, voter = community.submit(
        body.concept_id, body.concept_label, body.voter_name, body.site_url,
    )
    background.add_task(community.notify, database_id, voter, body.concept_label)
    return {"success": True}


@app.get("/api/favicon")
def favicon(domain: str = Query(""), size: int = Query(64, ge=16, le=256)) -> Response:
    content, content_type = fetch_favicon(domain, size)
    return Response(
        content=content,
        media_type=content_type,
        headers={
            "Cache-Control": "public, max-age=86400",
            "Access-Control-Allow-Origin": "*",
        },
    )


@app.post("/api/screenshot")
def screenshot(body: ScreenshotBody) -> dict:
    url = validate_url(body.url)
    hostname = urlparse(url).hostname
    try:
        payload = asdict(capture_screenshot(url))
    except UpstreamUnavailable as e:
        payload = {"screenshot_url": None, "favicon": favicon_url(hostname), "error": e.message}

    if body.suggest_colors:
        meta = fetch_site_meta(url)
        payload["site_name"] = meta.site_name
        payload["suggested_color"] = meta.theme_color or extract_dominant_color(payload["favicon"])
    return payload


@app.get("/api/example")
def example() -> JSONResponse:
    return JSONResponse(
        {
            "client_name": EXAMPLE_CLIENT["client_name"],
            "screenshot_url": example_screenshot_url(),
            "button_color": EXAMPLE_CLIENT["button_color"],
            "presence_color": EXAMPLE_CLIENT["presence_color"],
        },
        headers={"Cache-Control": "public, max-age=3600, s-maxage=86400"},
    )
