"""Local development entry point.

Usage:
    python run.py
    PORT=4000 python run.py
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from stripe_to_sheet import create_app

app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 3000))
    app.logger.info(f"stripe-to-sheet listening on port {port}")
    app.run(debug=app.debug, host="0.0.0.0", port=port)
