"""
Email templates for ShinobiSpeak.

All templates use inline CSS for maximum email client compatibility.
Branded with a dark theme and crimson (#E5484D) accents.

Each template function returns (subject, html_body, text_body).
"""

from __future__ import annotations

from html import escape

# Color constants
BG_DARK = "#0B0D12"
BG_CARD = "#12151C"
CRIMSON = "#E5484D"
TEXT_PRIMARY = "#F0F3F8"
TEXT_SECONDARY = "#9BA3AF"
BORDER = "#232836"

SIGNATURE = "-- The ShinobiSpeak Team"

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
    "ru": "Russian",
    "pt": "Portuguese",
    "ar": "Arabic",
    "hi": "Hindi",
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def _base_layout(content: str, app_name: str = "ShinobiSpeak") -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{app_name}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_DARK}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_DARK};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 32px;">
                            <span style="font-size: 22px; font-weight: 700; color: {TEXT_PRIMARY};">{app_name}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 40px 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 32px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You are receiving this because you joined a challenge on {app_name}.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    """Render a crimson CTA button."""
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 28px auto;">
    <tr>
        <td align="center" style="background-color: {CRIMSON}; border-radius: 8px;">
            <a href="{url}" target="_blank" style="display: inline-block; padding: 14px 32px; color: #FFFFFF; font-size: 16px; font-weight: 600; text-decoration: none; border-radius: 8px;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def _paragraph(text: str) -> str:
    return f'<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 16px 0;">{text}</p>'


def _heading(text: str) -> str:
    return f'<h1 style="color: {TEXT_PRIMARY}; font-size: 24px; font-weight: 700; margin: 0 0 16px 0;">{text}</h1>'


def challenge_completed(
    challenge_title: str,
    completed_days: int,
    total_days: int,
    claim_url: str,
    met_threshold: bool = True,
) -> tuple[str, str, str]:
    """
    Sent by the daily sweep when a participation ends COMPLETED.

    Below the threshold (no-loss challenges) the copy invites the user to
    claim their stake rather than their rewards.
    """
    if met_threshold:
        subject = "Challenge Completed!"
        line = f'Congratulations! You\'ve completed the "{challenge_title}" challenge. Claim your rewards now.'
        cta = "Claim Rewards"
    else:
        subject = "Challenge Completed"
        line = (
            f'Your "{challenge_title}" challenge has ended. You completed {completed_days} '
            f"out of {total_days} days. Claim your stake now."
        )
        cta = "Claim Stake"
    content = f"{_heading(subject)}\n{_paragraph(escape(line))}\n{_button(claim_url, cta)}"
    return subject, _base_layout(content), f"{line}\n\n{claim_url}\n\n{SIGNATURE}"


def challenge_failed(challenge_title: str, completed_days: int, total_days: int) -> tuple[str, str, str]:
    subject = "Challenge Failed"
    line = (
        f'Unfortunately, you didn\'t meet the requirements for the "{challenge_title}" challenge '
        f"({completed_days} of {total_days} days). Your stake has been forfeited."
    )
    content = f"{_heading(subject)}\n{_paragraph(escape(line))}"
    return subject, _base_layout(content), f"{line}\n\n{SIGNATURE}"


def practice_reminder(daily_requirement: int, language_code: str, practice_url: str) -> tuple[str, str, str]:
    """Daily nudge when today has no completed practice yet."""
    subject = "Daily Practice Reminder"
    line = (
        f"Don't forget to practice {daily_requirement} minutes of "
        f"{language_name(language_code)} today to maintain your streak!"
    )
    content = f"{_heading(subject)}\n{_paragraph(escape(line))}\n{_button(practice_url, 'Start Practicing')}"
    return subject, _base_layout(content), f"{line}\n\n{practice_url}\n\n{SIGNATURE}"


def streak_warning(challenge_title: str, practice_url: str) -> tuple[str, str, str]:
    subject = "Streak Warning"
    line = (
        f'Your streak for the "{challenge_title}" challenge is at risk! '
        "Practice today to avoid losing your stake."
    )
    content = f"{_heading(subject)}\n{_paragraph(escape(line))}\n{_button(practice_url, 'Practice Now')}"
    return subject, _base_layout(content), f"{line}\n\n{practice_url}\n\n{SIGNATURE}"
