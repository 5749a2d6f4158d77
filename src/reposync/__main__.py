from reposync.cli import app

app(prog_name="reposync")
