"""
Static page bodies served by the router.
"""

INDEX_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>y-router</title>
  <style>
    body { font-family: system-ui, sans-serif; max-width: 760px; margin: 3rem auto; padding: 0 1rem; line-height: 1.6; }
    code, pre { background: #f4f4f4; border-radius: 4px; padding: 0.1rem 0.3rem; }
    pre { padding: 0.8rem; overflow-x: auto; }
  </style>
</head>
<body>
  <h1>y-router</h1>
  <p>Use Anthropic Messages API clients, such as Claude Code, with any
  OpenAI-compatible backend. Requests sent to <code>/v1/messages</code> are
  translated to Chat Completions, and responses (including streams and tool
  calls) are translated back.</p>

  <h2>Quick start</h2>
  <pre>curl -fsSL https://cc.yovy.app/install.sh | bash</pre>
  <p>Or configure your client manually:</p>
  <pre>export ANTHROPIC_BASE_URL="https://cc.yovy.app"
export ANTHROPIC_API_KEY="your-openrouter-api-key"
export ANTHROPIC_MODEL="moonshotai/kimi-k2"
export ANTHROPIC_SMALL_FAST_MODEL="google/gemini-2.5-flash"</pre>

  <h2>Endpoints</h2>
  <ul>
    <li><code>POST /v1/messages</code> &mdash; Anthropic Messages API</li>
    <li><code>GET /health</code> &mdash; health check</li>
  </ul>
  <p>Your API key is forwarded to the upstream provider and never stored.</p>
  <p><a href="/terms">Terms</a> &middot; <a href="/privacy">Privacy</a></p>
</body>
</html>
"""

TERMS_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>y-router - Terms of Service</title>
</head>
<body>
  <h1>Terms of Service</h1>
  <p>y-router is provided "as is", without warranty of any kind. It forwards
  your requests to the upstream provider you configure; your use of that
  provider is governed by its own terms.</p>
  <p>You are responsible for the API keys you send through this service and
  for the content of your requests.</p>
  <p>The service may change or be discontinued at any time.</p>
  <p><a href="/">Back</a></p>
</body>
</html>
"""

PRIVACY_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>y-router - Privacy Policy</title>
</head>
<body>
  <h1>Privacy Policy</h1>
  <p>y-router does not store your API keys, prompts or completions. Requests
  are translated in memory and forwarded to the upstream provider.</p>
  <p>Operational logs may record request metadata such as model names,
  message counts and errors for troubleshooting.</p>
  <p>The upstream provider processes your data under its own privacy policy.</p>
  <p><a href="/">Back</a></p>
</body>
</html>
"""

INSTALL_SH = """#!/usr/bin/env bash
# Configure Claude Code to use y-router.
set -euo pipefail

BASE_URL="${Y_ROUTER_URL:-https://cc.yovy.app}"
DEFAULT_MODEL="moonshotai/kimi-k2"
DEFAULT_SMALL_MODEL="google/gemini-2.5-flash"

if ! command -v claude >/dev/null 2>&1; then
  if command -v npm >/dev/null 2>&1; then
    echo "Installing Claude Code..."
    npm install -g @anthropic-ai/claude-code
  else
    echo "npm is required to install Claude Code. Install Node.js first." >&2
    exit 1
  fi
fi

read -r -p "OpenRouter API key: " API_KEY < /dev/tty
if [ -z "$API_KEY" ]; then
  echo "An API key is required." >&2
  exit 1
fi

read -r -p "Model [$DEFAULT_MODEL]: " MODEL < /dev/tty
MODEL="${MODEL:-$DEFAULT_MODEL}"
read -r -p "Small/fast model [$DEFAULT_SMALL_MODEL]: " SMALL_MODEL < /dev/tty
SMALL_MODEL="${SMALL_MODEL:-$DEFAULT_SMALL_MODEL}"

case "${SHELL:-}" in
  */zsh) RC_FILE="$HOME/.zshrc" ;;
  */bash) RC_FILE="$HOME/.bashrc" ;;
  *) RC_FILE="$HOME/.profile" ;;
esac

{
  echo ""
  echo "# y-router"
  echo "export ANTHROPIC_BASE_URL=\\"$BASE_URL\\""
  echo "export ANTHROPIC_API_KEY=\\"$API_KEY\\""
  echo "export ANTHROPIC_MODEL=\\"$MODEL\\""
  echo "export ANTHROPIC_SMALL_FAST_MODEL=\\"$SMALL_MODEL\\""
} >> "$RC_FILE"

echo "Configuration written to $RC_FILE. Run: source $RC_FILE && claude"
"""
