import pytest

from scanners.parameters import RouteParameterExtractor


@pytest.mark.parametrize("route,template,params", [
    ("/users/{user_id}", "/users/{user_id}", [("user_id", None)]),
    ("/users/{id:int}", "/users/{id}", [("id", "integer")]),
    ("/users/{id:guid}/orders/{orderId?}", "/users/{id}/orders/{orderId}",
     [("id", "string:uuid"), ("orderId", None)]),
    ("/posts/<slug>", "/posts/{slug}", [("slug", None)]),
    ("/posts/<int:post_id>", "/posts/{post_id}", [("post_id", "integer")]),
    ("/api/products/:id", "/api/products/{id}", [("id", None)]),
    ("/static/*filepath", "/static/{filepath}", [("filepath", None)]),
    (r"^articles/(?P<year>[0-9]{4})/$", "articles/{year}/", [("year", None)]),
    ("/health", "/health", []),
])
def test_to_template(route, template, params):
    assert RouteParameterExtractor.to_template(route) == (template, params)


def test_mixed_syntaxes_keep_order():
    template, params = RouteParameterExtractor.to_template("/users/<int:user_id>/posts/:slug")
    assert template == "/users/{user_id}/posts/{slug}"
    assert params == [("user_id", "integer"), ("slug", None)]


def test_constraint_chain_uses_first_token():
    assert RouteParameterExtractor.infer_type("int:min(1)") == "integer"
    assert RouteParameterExtractor.infer_type("long") == "integer:int64"
    assert RouteParameterExtractor.infer_type("^[0-9]+$") is None
    assert RouteParameterExtractor.infer_type("customconverter") == "customconverter"
    assert RouteParameterExtractor.infer_type(None) is None


def test_type_specificity_ranks_none_generic_concrete():
    rank = RouteParameterExtractor.type_specificity
    assert rank(None) < rank("string") < rank("integer")
    assert rank("any") == rank("string")
