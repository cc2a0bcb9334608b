"""
Basic usage example for advroute.

This example demonstrates:
- Named schemas shared between routes
- Path parameter coercion
- then/catch chains
- Status-specific response contracts
"""

from advroute import Application, HTTPMethod, Request, RouterFactory, generate_openapi_json

app = Application(RouterFactory(parse_endpoints=False))

# In-memory data store for this example
users_db = {
    1: {"id": 1, "name": "Alice", "email": "alice@example.com"},
    2: {"id": 2, "name": "Bob", "email": "bob@example.com"},
}


class NotFound(Exception):
    status_code = 404


def load_user(request):
    user = users_db.get(request.params["id"])
    if user is None:
        raise NotFound(f"User {request.params['id']} not found")
    return user


def not_found(error, request, response):
    if not isinstance(error, NotFound):
        raise error
    response.status(404)
    return {"message": str(error)}


def create_user(request):
    user_id = max(users_db) + 1
    users_db[user_id] = {"id": user_id, **request.body}
    return users_db[user_id]


app.schema("User = {id: id, name: string, email: email}")

app.url("GET /users") \
    .ns("users") \
    .then(lambda request: list(users_db.values())) \
    .response("[User]")

app.url("GET /users/:id") \
    .ns("users") \
    .params("User.props('id')") \
    .then(load_user) \
    .catch(not_found) \
    .response("User") \
    .response("404 {message: string}")

app.url("POST /users") \
    .ns("users") \
    .body("User.omit('id')") \
    .then(create_user) \
    .response("User")


def main():
    for method, path, body in [
        (HTTPMethod.GET, "/users", None),
        (HTTPMethod.GET, "/users/1", None),
        (HTTPMethod.GET, "/users/99", None),
        (HTTPMethod.GET, "/users/abc", None),
        (HTTPMethod.POST, "/users", {"name": "Carol", "email": "carol@example.com"}),
        (HTTPMethod.POST, "/users", {"name": "Dave"}),
    ]:
        response = app.execute(Request(method=method, path=path, body=body))
        print(f"{method.value} {path}: {response.status_code}")
        print(f"Response: {response.body}")
        print()

    print(generate_openapi_json(app.endpoints(), title="Users API"))


if __name__ == "__main__":
    main()
