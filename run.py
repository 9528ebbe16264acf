import os

from app import create_app

app = create_app()

if __name__ == "__main__":
    # Development server only; production runs wsgi:app under gunicorn
    app.run(debug=app.config.get("DEBUG", False), port=int(os.environ.get("PORT", "8000")))
