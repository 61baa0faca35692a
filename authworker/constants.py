"""Platform URLs, selector candidates, challenge phrases and session cookie names."""

# ── URLs ─────────────────────────────────────────────────────────────────────

PLATFORM_BASE = "https://www.linkedin.com"
PLATFORM_LOGIN_URL = f"{PLATFORM_BASE}/login"
PLATFORM_FEED_URL = f"{PLATFORM_BASE}/feed/"
PLATFORM_COOKIE_DOMAIN = ".linkedin.com"

CLOUD_BROWSER_WS_URL = "wss://cloudbrowser.gologin.com/connect?token={token}&profile={profile_id}"
CLOUD_PROFILE_API_URL = "https://api.gologin.com/browser/{profile_id}"

# Routes that only render for a signed-in member
AUTHENTICATED_URL_MARKERS = ["/feed", "/mynetwork", "/messaging"]

# Interstitial security routes
CHECKPOINT_URL_MARKERS = ["checkpoint", "challenge", "two-step"]

# ── Selectors ────────────────────────────────────────────────────────────────

SELECTORS = {
    # Login form
    "login_username": ["input#username", 'input[name="session_key"]'],
    "login_password": ["input#password", 'input[name="session_password"]'],
    "login_submit": ['button[type="submit"]'],

    # Signed-in navigation
    "signed_in": [
        ".global-nav__me",
        '[data-control-name="identity_welcome_message"]',
        ".feed-identity-module",
        "img.global-nav__me-photo",
    ],

    # Challenge markers
    "captcha_iframe": [
        'iframe[src*="captcha"]',
        'iframe[src*="recaptcha"]',
        'iframe[src*="hcaptcha"]',
        'iframe[src*="arkose"]',
    ],
    "approval_confirm": ['button:has-text("I\'ve approved")', 'button:has-text("Done")'],
    "send_code": ['button:has-text("Send")', 'button:has-text("Get code")'],

    # One-time code entry
    "code_input": [
        'input[name="pin"]',
        "#input__phone_verification_pin",
        "#input__email_verification_pin",
        '[data-test="verification-code-input"]',
        'input[placeholder*="code" i]',
        'input[aria-label*="code" i]',
        'input[maxlength="6"]',
    ],
    "code_submit": [
        'button[type="submit"]',
        'button:has-text("Submit")',
        'button:has-text("Verify")',
        'button:has-text("Next")',
        "#two-step-submit-button",
    ],

    # Task scripts
    "connect_button": ['button:has-text("Connect")'],
    "add_note_button": ['button:has-text("Add a note")'],
    "note_textarea": ['textarea[name="message"]'],
    "send_button": ['button:has-text("Send")'],
    "message_button": ['button:has-text("Message")'],
    "message_editor": [".msg-form__contenteditable"],
    "message_send": [".msg-form__send-button"],
}

# The Bridge falls back to any text field once a code is in hand
CODE_INPUT_FALLBACK = 'input[type="text"]'

# ── Challenge Phrases (matched against lower-cased page text) ────────────────

CAPTCHA_PHRASES = [
    "prove you're human",
    "security verification required",
    "complete the security check",
    "verify you're not a robot",
]

INVALID_CREDENTIAL_PHRASES = [
    "that's not the right password",
    "wrong password",
    "incorrect password",
    "please check your password",
    "couldn't find a linkedin account",
    "couldn't find an account",
    "please enter a valid email",
]

ACCOUNT_LOCKED_PHRASES = [
    "account has been restricted",
    "your account has been temporarily restricted",
    "we've restricted your account",
    "temporarily locked",
    "unusual activity detected",
    "account is temporarily restricted",
]

PUSH_APPROVAL_PHRASES = [
    "approve this sign-in from your linkedin app",
    "open the linkedin app to confirm",
    "we sent a notification to your linkedin app",
    "approve from the linkedin app",
    "tap yes on the linkedin app",
    "check your linkedin app",
    "we'll send a push notification",
]

OTP_SENT_PHRASES = [
    "enter the code we sent",
    "we sent a code to",
    "check your email for a code",
    "check your phone for a code",
    "enter the 6 digit code",
    "enter the 6-digit code",
    "verification code sent",
    "we've sent a verification code",
]

AUTHENTICATOR_PHRASES = [
    "authenticator app",
    "authentication app",
    "google authenticator",
    "microsoft authenticator",
    "enter the code from your authenticator",
]

SMS_HINTS = ["phone", "sms", "text message"]
EMAIL_HINTS = ["email"]

SECURITY_CHECK_PHRASES = [
    "confirm it's you",
    "let's do a quick security check",
]

# ── Session Cookies ──────────────────────────────────────────────────────────

PRIMARY_TOKEN_COOKIE = "li_at"
SECONDARY_TOKEN_COOKIE = "li_a"

# Primary token is one of the four signals and always counted
CORROBORATING_COOKIES = ["li_at", "JSESSIONID", "bcookie", "bscookie"]
