"""Route handlers for posts and comments, and the route table that binds them.

Each mutating handler authenticates first, then loads the current record
(so a missing record is always "not found"), then checks ownership, and only
then validates and persists.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from blog_api.comment_store import CommentStore
from blog_api.dispatcher import ApiRequest, Route, Router
from blog_api.identity import TokenVerifier, verify_ownership
from blog_api.models import to_json
from blog_api.post_store import PostStore
from blog_api.responses import ApiResponse, empty_response, json_response
from blog_api.validation import (
    parse_body,
    validate_create_comment,
    validate_create_post,
    validate_update_post,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class AppContext:
    """Collaborators shared by every request; built once at startup."""

    posts: PostStore
    comments: CommentStore
    verifier: TokenVerifier


# -- Posts --


async def list_posts(request: ApiRequest, params: dict[str, str], ctx: AppContext) -> ApiResponse:
    posts = await ctx.posts.list_all()
    return json_response(200, [to_json(p) for p in posts])


async def get_post(request: ApiRequest, params: dict[str, str], ctx: AppContext) -> ApiResponse:
    post = await ctx.posts.get_by_id(params["id"])
    return json_response(200, to_json(post))


async def create_post(request: ApiRequest, params: dict[str, str], ctx: AppContext) -> ApiResponse:
    author_id = await ctx.verifier.authenticate(request.headers)
    data = validate_create_post(parse_body(request.body))
    post = await ctx.posts.create(data, author_id)
    await log.ainfo("post_created", post_id=post.id, author_id=author_id)
    return json_response(201, to_json(post))


async def update_post(request: ApiRequest, params: dict[str, str], ctx: AppContext) -> ApiResponse:
    requester_id = await ctx.verifier.authenticate(request.headers)
    existing = await ctx.posts.get_by_id(params["id"])
    verify_ownership(existing.author_id, requester_id)
    patch = validate_update_post(parse_body(request.body))
    post = await ctx.posts.update(existing.id, patch)
    await log.ainfo(
        "post_updated", post_id=post.id, requester_id=requester_id, fields=sorted(patch.changes())
    )
    return json_response(200, to_json(post))


async def delete_post(request: ApiRequest, params: dict[str, str], ctx: AppContext) -> ApiResponse:
    requester_id = await ctx.verifier.authenticate(request.headers)
    existing = await ctx.posts.get_by_id(params["id"])
    verify_ownership(existing.author_id, requester_id)
    await ctx.posts.delete(existing.id)
    await log.ainfo("post_deleted", post_id=existing.id, requester_id=requester_id)
    return empty_response(204)


# -- Comments --


async def list_comments(
    request: ApiRequest, params: dict[str, str], ctx: AppContext
) -> ApiResponse:
    # The index query does not check the parent, so do it here
    post = await ctx.posts.get_by_id(params["id"])
    comments = await ctx.comments.list_by_parent(post.id)
    return json_response(200, [to_json(c) for c in comments])


async def create_comment(
    request: ApiRequest, params: dict[str, str], ctx: AppContext
) -> ApiResponse:
    author_id = await ctx.verifier.authenticate(request.headers)
    post = await ctx.posts.get_by_id(params["id"])
    data = validate_create_comment(parse_body(request.body))
    comment = await ctx.comments.create(post.id, data, author_id)
    await log.ainfo(
        "comment_created", comment_id=comment.id, post_id=post.id, author_id=author_id
    )
    return json_response(201, to_json(comment))


async def delete_comment(
    request: ApiRequest, params: dict[str, str], ctx: AppContext
) -> ApiResponse:
    requester_id = await ctx.verifier.authenticate(request.headers)
    existing = await ctx.comments.get_by_id(params["commentId"])
    verify_ownership(existing.author_id, requester_id)
    await ctx.comments.delete(existing.id)
    await log.ainfo("comment_deleted", comment_id=existing.id, requester_id=requester_id)
    return empty_response(204)


ROUTES = Router(
    [
        Route("POST", "/posts", create_post, "create_post"),
        Route("GET", "/posts", list_posts, "list_posts"),
        Route("GET", "/posts/{id}", get_post, "get_post"),
        Route("PUT", "/posts/{id}", update_post, "update_post"),
        Route("DELETE", "/posts/{id}", delete_post, "delete_post"),
        Route("GET", "/posts/{id}/comments", list_comments, "list_comments"),
        Route("POST", "/posts/{id}/comments", create_comment, "create_comment"),
        Route("DELETE", "/comments/{commentId}", delete_comment, "delete_comment"),
    ]
)
