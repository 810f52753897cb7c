"""
Email body tests: user-supplied text must not become markup.
"""

from talhub import email_utils


def _capture(monkeypatch):
    sent = []
    monkeypatch.setattr(
        email_utils, "send_email",
        lambda to_email, subject, html_body, text_body=None: sent.append(html_body) or True,
    )
    return sent


def test_invitation_escapes_case_title_and_inviter(monkeypatch):
    sent = _capture(monkeypatch)

    email_utils.send_invitation_email(
        "new@example.com", "<script>alert(1)</script>", "tenant",
        "https://app.example.com/auth/sign-up?invite=abc&email=new%40example.com",
        inviter_name="Eve <b>Evil</b>",
    )

    body = sent[0]
    assert "<script>" not in body
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in body
    assert "Eve &lt;b&gt;Evil&lt;/b&gt;" in body
    assert "invite=abc&amp;email=new%40example.com" in body


def test_magic_link_escapes_link(monkeypatch):
    sent = _capture(monkeypatch)

    email_utils.send_magic_link_email("a@example.com", 'https://x.example.com/?token="><img src=x>')

    assert "<img" not in sent[0]
