"""
Routes mounted at /posts.

    GET  /posts/      list page
    GET  /posts/new   form
    POST /posts/      show what the form submitted

Nothing is stored. POST renders the submitted fields straight back.
"""

from ..http.errors import BadRequest
from ..http.router import Router


router = Router(name="posts")


@router.get("/", name="index")
def index(request, response):
    response.render("posts/index", {"title": "Posts"})


@router.get("/new", name="new")
def new(request, response):
    response.render("posts/new", {"title": "New Post"})


@router.post("/", name="create")
def create(request, response, proceed):
    if request.form is None:
        return proceed(BadRequest("Expected a URL-encoded form"))

    post = {"title": _field(request.form, "title"), "content": _field(request.form, "content")}
    response.render("posts/show", {"title": post["title"] or "Untitled", "post": post})


def _field(form, name):
    # A repeated field decodes to a list; the last value wins
    value = form.get(name, "")
    if isinstance(value, list):
        value = value[-1] if value else ""
    return value
