import logging
import re
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Any, Dict
from ..db import get_db
from ..dependencies import validated_record
from .. import models, schemas

logger = logging.getLogger("API")

router = APIRouter(prefix="/api/blog", tags=["blog"])

EXCERPT_LENGTH = 300
EDITABLE_FIELDS = ("title", "content", "category", "last_modified_by")

_TAG = re.compile(r"<[^>]+>")
_NON_SLUG = re.compile(r"[^a-z0-9]+")


def make_slug(title: str) -> str:
    """``"Ice thickness: notes!"`` -> ``"ice-thickness-notes"``."""
    return _NON_SLUG.sub("-", title.lower()).strip("-") or "post"


def excerpt(content: str) -> str:
    text = _TAG.sub("", content or "").strip()
    return text if len(text) <= EXCERPT_LENGTH else text[:EXCERPT_LENGTH] + "..."


def _unique_slug(db: Session, title: str) -> str:
    base = slug = make_slug(title)
    counter = 1
    while db.query(models.BlogPost).filter_by(slug=slug).first() is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _get_post_or_404(db: Session, slug: str) -> models.BlogPost:
    obj = db.query(models.BlogPost).filter_by(slug=slug).first()
    if obj is None:
        raise HTTPException(404, "Blog post not found")
    return obj


def _out(obj: models.BlogPost) -> schemas.BlogPostOut:
    return schemas.BlogPostOut(
        **schemas.BlogPostOut.model_validate(obj).model_dump(exclude={"excerpt"}),
        excerpt=excerpt(obj.content),
    )


@router.get("", response_model=list[schemas.BlogPostSummary])
def list_posts(db: Session = Depends(get_db)):
    q = db.query(models.BlogPost).order_by(models.BlogPost.created_at.desc(), models.BlogPost.id.desc())
    return [_out(obj) for obj in q.all()]


@router.get("/categories", response_model=list[str])
def list_categories(db: Session = Depends(get_db)):
    q = db.query(models.BlogPost.category).filter(models.BlogPost.category != "")
    return [name for (name,) in q.distinct().order_by(models.BlogPost.category).all()]


@router.get("/authors", response_model=list[str])
def list_authors(db: Session = Depends(get_db)):
    q = db.query(models.BlogPost.author).filter(models.BlogPost.author != "")
    return [name for (name,) in q.distinct().order_by(models.BlogPost.author).all()]


@router.get("/{slug}", response_model=schemas.BlogPostOut)
def get_post(slug: str, db: Session = Depends(get_db)):
    return _out(_get_post_or_404(db, slug))


@router.post("", response_model=schemas.BlogPostOut, status_code=201)
def create_post(
    post: Dict[str, Any] = Depends(validated_record("blog_posts")),
    db: Session = Depends(get_db)
):
    obj = models.BlogPost(
        slug=_unique_slug(db, post["title"]),
        title=post["title"],
        content=post["content"],
        category=post["category"],
        author=post["author"],
        last_modified_by=post.get("last_modified_by") or post["author"],
    )
    db.add(obj); db.commit(); db.refresh(obj)
    logger.info(f"Created blog post {obj.slug!r}")
    return _out(obj)


@router.put("/{slug}", response_model=schemas.BlogPostOut)
def update_post(
    slug: str,
    post: Dict[str, Any] = Depends(validated_record("blog_posts", partial=True)),
    db: Session = Depends(get_db)
):
    """Change title, content, category or editor; the slug stays as created."""
    obj = _get_post_or_404(db, slug)
    for field in EDITABLE_FIELDS:
        if post.get(field) is not None:
            setattr(obj, field, post[field])
    db.commit(); db.refresh(obj)
    logger.info(f"Updated blog post {slug!r}")
    return _out(obj)


@router.delete("/{slug}", response_model=schemas.StateChange)
def delete_post(slug: str, db: Session = Depends(get_db)):
    obj = _get_post_or_404(db, slug)
    db.delete(obj); db.commit()
    logger.info(f"Deleted blog post {slug!r}")
    return schemas.StateChange(message="Blog post deleted successfully")
