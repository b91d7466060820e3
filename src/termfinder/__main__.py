from termfinder.cli import app

app(prog_name="termfinder")
