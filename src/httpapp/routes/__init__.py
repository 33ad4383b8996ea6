"""
Route sets mounted by the website.

    home   mounted at "/"       GET /
    posts  mounted at "/posts"  GET /, GET /new, POST /

Each module exposes a module-level `router`. Paths inside a router are
relative to where it is mounted: the posts router registers "/new" and
the browser reaches it at "/posts/new".
"""
