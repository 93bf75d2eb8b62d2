from threatlens.core.page_collector import PageCollector

LOGIN_HTML = """
<html>
<head><title> Verify your account </title></head>
<body oncontextmenu="return false">
  <h1>Account suspended</h1>
  <p>Your account has been suspended. Verify now.</p>
  <form action="/collect.php" method="post">
    <input type="email" name="email">
    <input type="password" name="pass">
    <input type="hidden" name="session_token" value="x">
  </form>
  <img src="/img/logo.png" alt="PayPal">
  <div class="modal-login"><input type="password" name="pw"></div>
  <iframe srcdoc="&lt;form&gt;&lt;input type='password'&gt;&lt;/form&gt;"></iframe>
  <script>var secret = "should not appear";</script>
</body>
</html>
"""


def test_collect_login_page():
    page = PageCollector().collect("https://evil.example.net/verify", LOGIN_HTML, timestamp=123)

    assert page.url == "https://evil.example.net/verify"
    assert page.domain == "evil.example.net"
    assert page.title == "Verify your account"
    assert page.timestamp == 123

    form = page.forms[0]
    assert form.action == "https://evil.example.net/collect.php"
    assert form.method == "POST"
    assert [i.type for i in form.inputs] == ["email", "password", "hidden"]
    assert page.hidden_fields[0].name == "session_token"

    assert page.images[0].src == "https://evil.example.net/img/logo.png"
    assert page.images[0].alt == "PayPal"

    assert page.has_popup_login
    assert page.has_iframe_login
    assert page.right_click_disabled


def test_text_excludes_scripts():
    page = PageCollector().collect("https://evil.example.net/", LOGIN_HTML)
    assert "Your account has been suspended" in page.text_content
    assert "should not appear" not in page.text_content
    assert page.timestamp is not None


def test_script_based_context_menu_block():
    html = "<html><body><script>document.addEventListener('contextmenu', e => e.preventDefault());</script></body></html>"
    assert PageCollector().collect("https://example.com/", html).right_click_disabled


def test_plain_page():
    html = "<html><body><p>Hello</p><form action='#'><input name='q'></form></body></html>"
    page = PageCollector().collect("https://example.com/", html)

    assert page.title == ""
    assert page.forms[0].action == "#"
    assert page.forms[0].inputs[0].type == "text"
    assert not page.has_popup_login
    assert not page.has_iframe_login
    assert not page.right_click_disabled


def test_empty_html():
    page = PageCollector().collect("https://example.com/", "")
    assert page.forms == []
    assert page.text_content == ""
