import os

from memory_wall import create_app

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5050))
    app.logger.info("Database: %s", app.config["SQLALCHEMY_DATABASE_URI"])
    app.run(debug=True, host="0.0.0.0", port=port)
