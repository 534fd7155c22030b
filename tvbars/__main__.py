from tvbars.cli.main import app

app(prog_name="tvbars")
