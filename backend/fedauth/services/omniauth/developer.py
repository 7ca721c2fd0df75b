"""Developer strategy: a local form that asserts any identity.

Never enable it in production. It exists so the whole login flow can be
exercised without a real provider.
"""

from html import escape
from typing import Any

from starlette.responses import HTMLResponse, Response

from fedauth.services.omniauth.base import AuthPayload, Strategy

FORM_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body>
<h1>{title}</h1>
<form method="post" action="{action}">
{fields}
<button type="submit">Sign In</button>
</form>
</body>
</html>
"""

FIELD_TEMPLATE = '<label for="{name}">{label}:</label> <input type="text" id="{name}" name="{name}"/><br/>'


class DeveloperStrategy(Strategy):
    """Asserts whatever name and email are typed into its form.

    Options:
        fields: Form fields copied into ``info`` (default name, email)
        uid_field: Field used as the external uid (default email)
    """

    default_options = {"fields": ["name", "email"], "uid_field": "email"}

    async def request_phase(self, ctx) -> Response:
        fields = "\n".join(
            FIELD_TEMPLATE.format(name=escape(field), label=escape(field.replace("_", " ").title()))
            for field in self.options["fields"]
        )
        return HTMLResponse(
            FORM_TEMPLATE.format(
                title="User Info",
                action=escape(ctx.registration.callback_path),
                fields=fields,
            )
        )

    async def callback_phase(self, ctx) -> AuthPayload:
        uid_field = self.options["uid_field"]
        uid = str(ctx.params.get(uid_field) or "").strip()
        if not uid:
            self.fail("invalid_credentials")

        info: dict[str, Any] = {}
        for field in self.options["fields"]:
            value = ctx.params.get(field)
            if value:
                info[field] = str(value).strip()

        return AuthPayload(provider=self.name, uid=uid, info=info)
