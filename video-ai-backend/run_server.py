import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        # Uploads and generated clips land under media/, keep them out of the reload watcher
        reload_excludes=["media/*", "media/videos/*", "media/uploads/*", "media/merge/*"]
    )
