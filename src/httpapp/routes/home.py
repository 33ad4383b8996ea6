"""Routes mounted at the site root."""

from ..http.router import Router


router = Router(name="home")


@router.get("/", name="index")
def index(request, response):
    response.render("index", {
        "title": "Home",
        "lucky_number": request.cookies.get("luckyNumber"),
    })
