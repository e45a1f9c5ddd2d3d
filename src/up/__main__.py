from up.cli import app

app()
