# run.py
import os
from dotenv import load_dotenv

# 1) load .env before Config is imported
dotenv_path = os.path.join(os.path.dirname(__file__), ".env")
load_dotenv(dotenv_path)

from app import create_app

app = create_app({"DOTENV_PATH": os.environ.get("DOTENV_PATH") or dotenv_path})

if __name__ == "__main__":
    # development server
    port = int(os.environ.get("PORT", 5001))
    app.run(host="0.0.0.0", port=port, debug=True)
