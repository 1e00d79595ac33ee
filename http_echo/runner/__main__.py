from http_echo.runner.cli import main

main()
