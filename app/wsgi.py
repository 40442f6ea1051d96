from app.noticeboard import create_app

app = create_app()
