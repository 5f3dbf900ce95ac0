from saasbackup.cli.app import app

app(prog_name="saasbackup")
