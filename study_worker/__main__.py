from study_worker.main import main

main()
