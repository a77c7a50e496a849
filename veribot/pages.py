"""HTML result pages returned by the OAuth callback."""

from __future__ import annotations

import html
from typing import Final

from .outcomes import Allowed, Denied, VerificationOutcome, page_message

INVALID_REQUEST: Final[str] = "Invalid verification request."
SESSION_INVALID: Final[str] = "Invalid or expired verification session."
SESSION_EXPIRED: Final[str] = "Verification session has expired."
GENERIC_ERROR: Final[str] = "An error occurred during verification."

_CHECK_ICON: Final[str] = (
    '<path stroke-linecap="round" stroke-linejoin="round" stroke-width="2" d="M5 13l4 4L19 7" />'
)
_CROSS_ICON: Final[str] = (
    '<path stroke-linecap="round" stroke-linejoin="round" stroke-width="2" d="M6 18L18 6M6 6l12 12" />'
)

_PAGE_TEMPLATE: Final[str] = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <script src="https://cdn.tailwindcss.com"></script>
    <style>
        body {{
            background-color: #1a1a1a;
            background-image: radial-gradient(circle, #404040 1px, transparent 1px);
            background-size: 20px 20px;
        }}
    </style>
</head>
<body class="min-h-screen flex items-center justify-center">
    <div class="text-center">
        <div class="mx-auto flex items-center justify-center h-16 w-16 rounded-full {badge} mb-6">
            <svg class="h-8 w-8 {icon_color}" fill="none" viewBox="0 0 24 24" stroke="currentColor">
                {icon}
            </svg>
        </div>
        <h1 class="text-3xl font-bold text-white mb-4">{title}</h1>
        <p class="text-xl text-gray-300">{message}</p>
    </div>
</body>
</html>
"""


def _render(title: str, message: str, *, success: bool) -> str:
    return _PAGE_TEMPLATE.format(
        title=html.escape(title),
        message=html.escape(message),
        badge="bg-green-900" if success else "bg-red-900",
        icon_color="text-green-400" if success else "text-red-400",
        icon=_CHECK_ICON if success else _CROSS_ICON,
    )


def page_title(outcome: VerificationOutcome) -> str:
    match outcome:
        case Allowed():
            return "Success"
        case Denied(reason="alt_account"):
            return "Account already verified"
        case Denied(reason="proxy"):
            return "VPN/Proxy Detected"
        case _:
            return "Verification Failed"


def render_error_page(message: str) -> str:
    return _render("Verification Failed", message, success=False)


def render_result_page(outcome: VerificationOutcome) -> str:
    return _render(page_title(outcome), page_message(outcome), success=outcome.success)


__all__ = ["page_title", "render_error_page", "render_result_page"]
