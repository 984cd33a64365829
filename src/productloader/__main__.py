from productloader.cli.main import app

app()
